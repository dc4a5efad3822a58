"""Custom mix assembly.

A mix is built in four additive phases: a base selection from the library,
similar-track expansion, similar-artist expansion and output shaping. Every
phase feeds the same :class:`MixAccumulator`, so a track key is never added
twice and the per-artist bound holds across the whole result.
"""
from __future__ import annotations

import logging
import random
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

from plexmix.config import DEFAULT_MATCHING_SETTINGS, MatchingSettings
from plexmix.models import CandidateTrack, MixOptions, MixSort, MixSource
from plexmix.services.library import MusicLibrary, TrackFilters, played_since
from plexmix.services.normalizer import fold, is_sentinel_artist

logger = logging.getLogger(__name__)


class MixAccumulator:
    """Ordered, deduplicated track keys with an optional per-artist bound."""

    def __init__(self, max_per_artist: Optional[int] = None) -> None:
        self.max_per_artist = max_per_artist
        self.keys: List[str] = []
        self.tracks: List[CandidateTrack] = []
        self._seen: Set[str] = set()
        self._artist_counts: Counter = Counter()

    def __len__(self) -> int:
        return len(self.keys)

    def __contains__(self, key: object) -> bool:
        return key in self._seen

    def add(self, track: CandidateTrack) -> bool:
        key = track.rating_key
        if not key or key in self._seen:
            return False
        artist = artist_identity(track)
        if self.max_per_artist is not None and self._artist_counts[artist] >= self.max_per_artist:
            return False
        self._seen.add(key)
        self._artist_counts[artist] += 1
        self.keys.append(key)
        self.tracks.append(track)
        return True

    def extend(self, tracks: Iterable[CandidateTrack], limit: Optional[int] = None) -> int:
        added = 0
        for track in tracks:
            if limit is not None and added >= limit:
                break
            if self.add(track):
                added += 1
        return added


def artist_identity(track: CandidateTrack) -> str:
    return fold(track.artist or track.album_artist)


def rank_artists(tracks: Iterable[CandidateTrack], settings: MatchingSettings) -> List[str]:
    """Artist names ordered by how often they appear, sentinels excluded."""
    counts: Counter = Counter()
    display: Dict[str, str] = {}
    for track in tracks:
        name = (track.artist or track.album_artist or "").strip()
        if is_sentinel_artist(name, settings):
            continue
        identity = fold(name)
        display.setdefault(identity, name)
        counts[identity] += 1
    # Counter.most_common keeps first-seen order among equal counts.
    return [display[identity] for identity, _ in counts.most_common()]


def apply_filters(tracks: Iterable[CandidateTrack], options: MixOptions, now: datetime) -> List[CandidateTrack]:
    genre = options.genre.strip().lower() if options.genre else None
    added_cutoff = now - timedelta(days=options.added_within_days) if options.added_within_days else None

    kept: List[CandidateTrack] = []
    for track in tracks:
        if genre and genre not in {g.strip().lower() for g in track.genres}:
            continue
        if options.min_rating is not None and (track.user_rating or 0.0) < options.min_rating:
            continue
        if options.year_from is not None and (track.year is None or track.year < options.year_from):
            continue
        if options.year_to is not None and (track.year is None or track.year > options.year_to):
            continue
        if added_cutoff is not None and (track.added_at is None or track.added_at < added_cutoff):
            continue
        kept.append(track)
    return kept


_SORT_KEYS: Dict[MixSort, Callable[[CandidateTrack], object]] = {
    MixSort.TITLE: lambda t: fold(t.title),
    MixSort.ARTIST: lambda t: (fold(t.artist or t.album_artist), fold(t.title)),
}
_DESCENDING_KEYS: Dict[MixSort, Callable[[CandidateTrack], object]] = {
    MixSort.YEAR: lambda t: t.year or 0,
    MixSort.RATING: lambda t: t.user_rating or 0.0,
    MixSort.PLAY_COUNT: lambda t: t.view_count,
    MixSort.LAST_PLAYED: lambda t: t.last_viewed_at or datetime.min,
    MixSort.ADDED: lambda t: t.added_at or datetime.min,
}


def sort_tracks(tracks: List[CandidateTrack], sort_by: MixSort, rng: random.Random) -> List[CandidateTrack]:
    if sort_by == MixSort.RANDOM:
        shuffled = list(tracks)
        rng.shuffle(shuffled)
        return shuffled
    if sort_by in _SORT_KEYS:
        return sorted(tracks, key=_SORT_KEYS[sort_by])
    if sort_by in _DESCENDING_KEYS:
        return sorted(tracks, key=_DESCENDING_KEYS[sort_by], reverse=True)
    return list(tracks)


async def select_source(
    options: MixOptions,
    library: MusicLibrary,
    settings: MatchingSettings,
    now: datetime,
) -> List[CandidateTrack]:
    history_cutoff = now - timedelta(days=options.history_days)
    source = options.source

    if source == MixSource.TOP_ARTISTS:
        return await _top_artist_tracks(options, library, settings, history_cutoff)

    filters: TrackFilters
    if source == MixSource.PLAYED:
        filters = {"played": True}
    elif source == MixSource.UNPLAYED:
        filters = {"played": False}
    elif source == MixSource.RECENTLY_PLAYED:
        filters = played_since(history_cutoff)
    else:
        filters = {}
    return await library.list_tracks(filters)


async def _top_artist_tracks(
    options: MixOptions,
    library: MusicLibrary,
    settings: MatchingSettings,
    history_cutoff: datetime,
) -> List[CandidateTrack]:
    recent = await library.list_tracks(played_since(history_cutoff))
    artists = rank_artists(recent, settings)[: options.top_artists_count]
    logger.debug("Top artists since %s: %s", history_cutoff, artists)

    pool: List[CandidateTrack] = []
    for name in artists:
        try:
            artist = await library.find_artist(name)
            if artist is None:
                logger.debug("Artist '%s' not found in library", name)
                continue
            pool.extend(await library.get_artist_top_tracks(artist.key, options.tracks_per_artist))
        except Exception as exc:
            logger.warning("Skipping top artist '%s': %s", name, exc)
    return pool


async def expand_similar_tracks(
    accumulator: MixAccumulator,
    seeds: List[CandidateTrack],
    options: MixOptions,
    library: MusicLibrary,
) -> int:
    added = 0
    for seed in seeds[: options.max_similar_seeds]:
        try:
            similar = await library.get_similar_tracks(seed.rating_key)
        except Exception as exc:
            logger.warning("Similar-track lookup failed for %s: %s", seed.rating_key, exc)
            continue
        added += accumulator.extend(similar, limit=options.similar_tracks_per_seed)
    logger.debug("Similar-track expansion added %s tracks", added)
    return added


async def expand_similar_artists(
    accumulator: MixAccumulator,
    base: List[CandidateTrack],
    options: MixOptions,
    library: MusicLibrary,
    settings: MatchingSettings,
) -> int:
    source_artists: List[str] = []
    seen_artists: Set[str] = set()
    for track in base:
        name = (track.artist or track.album_artist or "").strip()
        identity = fold(name)
        if identity in seen_artists or is_sentinel_artist(name, settings):
            continue
        seen_artists.add(identity)
        source_artists.append(name)

    added = 0
    related_used = 0
    for name in source_artists[: options.max_source_artists]:
        if related_used >= options.similar_artists_count:
            break
        try:
            artist = await library.find_artist(name)
            if artist is None:
                continue
            related = await library.get_related_artists(artist.key)
        except Exception as exc:
            logger.warning("Related-artist lookup failed for '%s': %s", name, exc)
            continue

        for candidate in related:
            if related_used >= options.similar_artists_count:
                break
            identity = fold(candidate.title)
            if identity in seen_artists or is_sentinel_artist(candidate.title, settings):
                continue
            seen_artists.add(identity)
            related_used += 1
            try:
                tracks = await library.get_artist_top_tracks(candidate.key, options.tracks_from_similar_artists)
            except Exception as exc:
                logger.warning("Top tracks lookup failed for '%s': %s", candidate.title, exc)
                continue
            added += accumulator.extend(tracks, limit=options.tracks_from_similar_artists)
    logger.debug("Similar-artist expansion used %s artists and added %s tracks", related_used, added)
    return added


async def build_custom_mix(
    options: MixOptions,
    library: MusicLibrary,
    settings: MatchingSettings = DEFAULT_MATCHING_SETTINGS,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> List[str]:
    """Ordered, deduplicated track keys for one custom mix.

    Expansion may push the result past ``options.track_count``; only the base
    selection is bounded by it.
    """
    rng = rng or random.Random()
    now = now or datetime.now()

    pool = await select_source(options, library, settings, now)
    candidates = sort_tracks(apply_filters(pool, options, now), options.sort_by, rng)
    logger.info(
        "Mix source '%s' returned %s tracks, %s after filters",
        options.source.value,
        len(pool),
        len(candidates),
    )

    accumulator = MixAccumulator(options.max_per_artist)
    for track in candidates:
        if len(accumulator) >= options.track_count:
            break
        accumulator.add(track)
    base = list(accumulator.tracks)

    if options.include_similar_tracks:
        await expand_similar_tracks(accumulator, base, options, library)
    if options.include_similar_artists:
        await expand_similar_artists(accumulator, base, options, library, settings)

    keys = list(accumulator.keys)
    if options.shuffle_result:
        rng.shuffle(keys)
    logger.info("Built custom mix with %s tracks (%s from base selection)", len(keys), len(base))
    return keys
