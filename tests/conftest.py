import os
import tempfile
from datetime import datetime
from typing import Dict, List, Optional

import pytest

os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="plexmix-logs-"))
os.environ.setdefault("PLEX_TOKEN", "test-token")

from plexmix.models import AlbumRecord, ArtistRecord, CandidateTrack  # noqa: E402
from plexmix.services.library import LibraryUnavailableError  # noqa: E402


def make_track(key, title="Song", artist="Artist", **fields) -> CandidateTrack:
    return CandidateTrack(rating_key=str(key), title=title, artist=artist, **fields)


class FakeLibrary:
    """In-memory library that records every call it receives."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.tracks: List[CandidateTrack] = []
        self.played: List[CandidateTrack] = []
        self.search_results: Dict[str, List[CandidateTrack]] = {}
        self.similar: Dict[str, List[CandidateTrack]] = {}
        self.related_tracks: Dict[str, List[CandidateTrack]] = {}
        self.artists: Dict[str, ArtistRecord] = {}
        self.related_artists: Dict[str, List[ArtistRecord]] = {}
        self.top_tracks: Dict[str, List[CandidateTrack]] = {}
        self.albums: List[AlbumRecord] = []
        self.album_tracks: Dict[str, List[CandidateTrack]] = {}
        self.stale: List[CandidateTrack] = []
        self.created: Dict[str, List[str]] = {}
        self.unavailable = False

    def _record(self, name, *args) -> None:
        self.calls.append((name, *args))
        if self.unavailable:
            raise LibraryUnavailableError("library offline")

    def calls_to(self, name) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def search(self, query):
        self._record("search", query)
        return list(self.search_results.get(query, []))

    async def list_tracks(self, filters):
        self._record("list_tracks", dict(filters))
        if filters.get("played") is True:
            pool = self.played
        elif filters.get("played") is False:
            pool = [t for t in self.tracks if t.view_count == 0]
        else:
            pool = self.tracks
        if filters.get("limit"):
            pool = pool[: filters["limit"]]
        return list(pool)

    async def get_similar_tracks(self, track_key):
        self._record("get_similar_tracks", track_key)
        return list(self.similar.get(track_key, []))

    async def get_related_tracks(self, track_key, limit):
        self._record("get_related_tracks", track_key, limit)
        return list(self.related_tracks.get(track_key, []))[:limit]

    async def find_artist(self, name) -> Optional[ArtistRecord]:
        self._record("find_artist", name)
        return self.artists.get(name)

    async def get_related_artists(self, artist_key):
        self._record("get_related_artists", artist_key)
        return list(self.related_artists.get(artist_key, []))

    async def get_artist_top_tracks(self, artist_key, limit):
        self._record("get_artist_top_tracks", artist_key, limit)
        return list(self.top_tracks.get(artist_key, []))[:limit]

    async def get_recently_added_albums(self, limit):
        self._record("get_recently_added_albums", limit)
        return list(self.albums)[:limit]

    async def get_album_tracks(self, album_key):
        self._record("get_album_tracks", album_key)
        return list(self.album_tracks.get(album_key, []))

    async def get_stale_tracks(self, stale_days, limit, max_per_artist=None):
        self._record("get_stale_tracks", stale_days, limit, max_per_artist)
        return list(self.stale)[:limit]

    async def create_playlist(self, title, track_keys):
        self._record("create_playlist", title, list(track_keys))
        self.created[title] = list(track_keys)
        return True


@pytest.fixture
def library() -> FakeLibrary:
    return FakeLibrary()


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, 0)
