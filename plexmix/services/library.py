from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from plexmix.models import AlbumRecord, ArtistRecord, CandidateTrack

TrackFilters = Dict[str, Any]


class LibraryUnavailableError(Exception):
    """The library backend cannot be reached at all."""


class MusicLibrary(Protocol):
    """Read/write surface of the music library consumed by the matcher and mix builders.

    ``list_tracks`` understands the filter keys ``played`` (bool),
    ``viewed_after`` / ``viewed_before`` (datetime), ``sort`` (e.g.
    ``"lastViewedAt:desc"``) and ``limit``.
    """

    async def search(self, query: str) -> List[CandidateTrack]: ...

    async def list_tracks(self, filters: TrackFilters) -> List[CandidateTrack]: ...

    async def get_similar_tracks(self, track_key: str) -> List[CandidateTrack]: ...

    async def get_related_tracks(self, track_key: str, limit: int) -> List[CandidateTrack]: ...

    async def find_artist(self, name: str) -> Optional[ArtistRecord]: ...

    async def get_related_artists(self, artist_key: str) -> List[ArtistRecord]: ...

    async def get_artist_top_tracks(self, artist_key: str, limit: int) -> List[CandidateTrack]: ...

    async def get_recently_added_albums(self, limit: int) -> List[AlbumRecord]: ...

    async def get_album_tracks(self, album_key: str) -> List[CandidateTrack]: ...

    async def get_stale_tracks(
        self, stale_days: int, limit: int, max_per_artist: Optional[int] = None
    ) -> List[CandidateTrack]: ...

    async def create_playlist(self, title: str, track_keys: List[str]) -> bool: ...


def played_since(cutoff: datetime, **extra: Any) -> TrackFilters:
    filters: TrackFilters = {"played": True, "viewed_after": cutoff, "sort": "lastViewedAt:desc"}
    filters.update(extra)
    return filters


__all__ = ["LibraryUnavailableError", "MusicLibrary", "TrackFilters", "played_since"]
