from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timedelta
from typing import List, Optional

from plexmix.config import DEFAULT_MATCHING_SETTINGS, MatchingSettings
from plexmix.services.library import MusicLibrary, played_since
from plexmix.services.mix_builder import MixAccumulator, rank_artists

logger = logging.getLogger(__name__)

WEEKLY_MIX_TITLE = "Your Weekly Mix"
DAILY_MIX_TITLE = "Daily Mix"
TIME_CAPSULE_TITLE = "Time Capsule"
NEW_MUSIC_MIX_TITLE = "New Music Mix"

WEEKLY_WINDOW_DAYS = 7
WEEKLY_FALLBACK_WINDOW_DAYS = 30
WEEKLY_MIN_HISTORY_TRACKS = 20
WEEKLY_MIN_TRACKS = 5
DAILY_MIN_TRACKS = 20
TIME_CAPSULE_MIN_TRACKS = 5
NEW_MUSIC_MIN_TRACKS = 5


async def build_weekly_mix(
    library: MusicLibrary,
    settings: MatchingSettings = DEFAULT_MATCHING_SETTINGS,
    top_artists: int = 10,
    tracks_per_artist: int = 5,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> bool:
    now = now or datetime.now()
    recent = await library.list_tracks(played_since(now - timedelta(days=WEEKLY_WINDOW_DAYS)))
    logger.debug("Weekly mix: %s tracks played in the last %s days", len(recent), WEEKLY_WINDOW_DAYS)
    if len(recent) < WEEKLY_MIN_HISTORY_TRACKS:
        recent = await library.list_tracks(played_since(now - timedelta(days=WEEKLY_FALLBACK_WINDOW_DAYS)))
        logger.debug(
            "Weekly mix: falling back to %s days, %s tracks",
            WEEKLY_FALLBACK_WINDOW_DAYS,
            len(recent),
        )

    accumulator = MixAccumulator()
    for name in rank_artists(recent, settings)[:top_artists]:
        try:
            artist = await library.find_artist(name)
            if artist is None:
                logger.debug("Weekly mix: artist '%s' not in library", name)
                continue
            accumulator.extend(await library.get_artist_top_tracks(artist.key, tracks_per_artist))
        except Exception as exc:
            logger.warning("Weekly mix: skipping artist '%s': %s", name, exc)

    return await _create_if_enough(library, WEEKLY_MIX_TITLE, accumulator.keys, WEEKLY_MIN_TRACKS, rng)


async def build_daily_mix(
    library: MusicLibrary,
    seed_count: int = 5,
    related_budget: int = 30,
    rediscovery_count: int = 10,
    stale_days: int = 30,
    rng: Optional[random.Random] = None,
) -> bool:
    seeds = await library.list_tracks({"played": True, "sort": "lastViewedAt:desc", "limit": seed_count})
    seeds = seeds[:seed_count]
    accumulator = MixAccumulator()
    accumulator.extend(seeds)

    if seeds:
        per_seed = math.ceil(related_budget / len(seeds))
        remaining = related_budget
        for seed in seeds:
            if remaining <= 0:
                break
            try:
                related = await library.get_related_tracks(seed.rating_key, per_seed)
            except Exception as exc:
                logger.warning("Daily mix: related lookup failed for %s: %s", seed.rating_key, exc)
                continue
            remaining -= accumulator.extend(related, limit=min(per_seed, remaining))

    try:
        stale = await library.get_stale_tracks(stale_days, rediscovery_count)
    except Exception as exc:
        logger.warning("Daily mix: rediscovery lookup failed: %s", exc)
        stale = []
    accumulator.extend(stale, limit=rediscovery_count)

    return await _create_if_enough(library, DAILY_MIX_TITLE, accumulator.keys, DAILY_MIN_TRACKS, rng)


async def build_time_capsule(
    library: MusicLibrary,
    stale_days: int = 30,
    limit: int = 25,
    max_per_artist: int = 2,
    rng: Optional[random.Random] = None,
) -> bool:
    tracks = await library.get_stale_tracks(stale_days, limit, max_per_artist=max_per_artist)
    accumulator = MixAccumulator()
    accumulator.extend(tracks, limit=limit)
    return await _create_if_enough(library, TIME_CAPSULE_TITLE, accumulator.keys, TIME_CAPSULE_MIN_TRACKS, rng)


async def build_new_music_mix(
    library: MusicLibrary,
    album_count: int = 5,
    tracks_per_album: int = 3,
    rng: Optional[random.Random] = None,
) -> bool:
    rng = rng or random.Random()
    albums = await library.get_recently_added_albums(album_count)
    accumulator = MixAccumulator()
    for album in albums[:album_count]:
        try:
            tracks = list(await library.get_album_tracks(album.key))
        except Exception as exc:
            logger.warning("New music mix: skipping album '%s': %s", album.title, exc)
            continue
        rng.shuffle(tracks)
        accumulator.extend(tracks, limit=tracks_per_album)

    return await _create_if_enough(library, NEW_MUSIC_MIX_TITLE, accumulator.keys, NEW_MUSIC_MIN_TRACKS, rng)


async def generate_all_mixes(
    library: MusicLibrary,
    settings: MatchingSettings = DEFAULT_MATCHING_SETTINGS,
    rng: Optional[random.Random] = None,
) -> int:
    """Build every named mix; one failing mix never stops the others."""
    builders = (
        (WEEKLY_MIX_TITLE, lambda: build_weekly_mix(library, settings, rng=rng)),
        (DAILY_MIX_TITLE, lambda: build_daily_mix(library, rng=rng)),
        (TIME_CAPSULE_TITLE, lambda: build_time_capsule(library, rng=rng)),
        (NEW_MUSIC_MIX_TITLE, lambda: build_new_music_mix(library, rng=rng)),
    )
    created = 0
    for title, build in builders:
        try:
            if await build():
                created += 1
        except Exception:
            logger.exception("Failed to generate '%s'", title)
    logger.info("Generated %s of %s mixes", created, len(builders))
    return created


async def _create_if_enough(
    library: MusicLibrary,
    title: str,
    keys: List[str],
    minimum: int,
    rng: Optional[random.Random],
) -> bool:
    if len(keys) < minimum:
        logger.info("Not enough tracks for '%s' (%s, need at least %s)", title, len(keys), minimum)
        return False
    shuffled = list(keys)
    (rng or random.Random()).shuffle(shuffled)
    created = await library.create_playlist(title, shuffled)
    if created:
        logger.info("Created '%s' with %s tracks", title, len(shuffled))
    else:
        logger.warning("Library refused to create '%s'", title)
    return bool(created)


__all__ = [
    "build_daily_mix",
    "build_new_music_mix",
    "build_time_capsule",
    "build_weekly_mix",
    "generate_all_mixes",
]
