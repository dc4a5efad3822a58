from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Union

from plexmix.config import MatchingSettings
from plexmix.models import CandidateTrack, ExternalPlaylist, ExternalTrack, MatchedPlaylist, MatchedTrack
from plexmix.services.library import LibraryUnavailableError
from plexmix.services.normalizer import WHITESPACE, first_artist
from plexmix.services.scoring import is_accepted, score_candidate

logger = logging.getLogger(__name__)

SearchResult = Union[List[CandidateTrack], Awaitable[List[CandidateTrack]]]
LibrarySearch = Callable[[str], SearchResult]
ProgressCallback = Callable[[int, int, str], None]


@dataclass
class MatchResult:
    track: CandidateTrack
    score: float


@dataclass
class MatchAttempt:
    result: Optional[MatchResult]
    best_score: float
    had_candidates: bool


class TrackMatcher:
    def __init__(self, library_search: LibrarySearch, settings: MatchingSettings) -> None:
        self.library_search = library_search
        self.settings = settings

    async def find_best_match(self, track: ExternalTrack) -> MatchAttempt:
        query = build_search_query(track, self.settings)
        logger.debug("Searching for track='%s' artist='%s' with query '%s'", track.title, track.artist, query)
        candidates = await self._search_candidates(query)

        best: Optional[MatchResult] = None
        for candidate in candidates:
            score = score_candidate(track, candidate, self.settings)
            if best is None or score > best.score:
                best = MatchResult(track=candidate, score=score)

        if best is None:
            logger.debug("No candidates for '%s'", track.label)
            return MatchAttempt(result=None, best_score=0.0, had_candidates=False)
        if not is_accepted(best.score, self.settings):
            logger.debug(
                "Best score %.2f below threshold %.2f for '%s'",
                best.score,
                self.settings.min_match_score,
                track.label,
            )
            return MatchAttempt(result=None, best_score=best.score, had_candidates=True)
        return MatchAttempt(result=best, best_score=best.score, had_candidates=True)

    async def _search_candidates(self, query: str) -> List[CandidateTrack]:
        try:
            results = self.library_search(query)
            if inspect.isawaitable(results):
                results = await results
        except LibraryUnavailableError:
            raise
        except Exception as exc:
            logger.warning("Search failed for '%s': %s", query, exc)
            return []
        return [item for item in results or [] if item.rating_key]


def build_search_query(track: ExternalTrack, settings: MatchingSettings) -> str:
    """Primary artist plus title; scoring settings do not shape the query."""
    artist = first_artist(track.artist, settings)
    return WHITESPACE.sub(" ", f"{artist} {track.title}").strip()


async def match_tracks(
    tracks: Iterable[ExternalTrack],
    library_search: LibrarySearch,
    settings: MatchingSettings,
    on_progress: Optional[ProgressCallback] = None,
) -> List[MatchedTrack]:
    pending = list(tracks)
    total = len(pending)
    matcher = TrackMatcher(library_search, settings)
    matched: List[MatchedTrack] = []

    for index, track in enumerate(pending, start=1):
        attempt = await matcher.find_best_match(track)
        matched.append(_to_matched_track(track, attempt))

        if on_progress:
            try:
                on_progress(index, total, track.label)
            except Exception:  # pragma: no cover - progress is best-effort
                logger.debug("Progress callback failed", exc_info=True)
    return matched


async def match_playlist(
    playlist: ExternalPlaylist,
    library_search: LibrarySearch,
    settings: MatchingSettings,
    on_progress: Optional[ProgressCallback] = None,
) -> MatchedPlaylist:
    tracks = await match_tracks(playlist.tracks, library_search, settings, on_progress)
    result = MatchedPlaylist(
        id=playlist.id,
        name=playlist.name,
        description=playlist.description,
        source=playlist.source,
        tracks=tracks,
    )
    logger.info(
        "Playlist '%s' matched %s of %s tracks",
        playlist.name,
        result.matched_count,
        result.total_count,
    )
    return result


def _to_matched_track(track: ExternalTrack, attempt: MatchAttempt) -> MatchedTrack:
    match = attempt.result
    if match is None:
        return MatchedTrack(
            title=track.title,
            artist=track.artist,
            album=track.album,
            matched=False,
            best_score=attempt.best_score if attempt.had_candidates else None,
        )
    return MatchedTrack(
        title=track.title,
        artist=track.artist,
        album=track.album,
        matched=True,
        plex_rating_key=match.track.rating_key,
        plex_title=match.track.title,
        plex_artist=match.track.artist or match.track.album_artist,
        score=match.score,
        best_score=match.score,
    )
