from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from plexapi.exceptions import NotFound
from plexapi.server import PlexServer

from plexmix.models import AlbumRecord, ArtistRecord, CandidateTrack
from plexmix.services.library import LibraryUnavailableError, TrackFilters

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50


class PlexLibrary:
    """:class:`~plexmix.services.library.MusicLibrary` backed by a Plex music section.

    plexapi is blocking, so every call runs in a worker thread; callers still
    await one call at a time.
    """

    def __init__(
        self,
        plex_url: str,
        plex_token: str,
        music_section: str,
        plex: Optional[PlexServer] = None,
        section: Any = None,
    ) -> None:
        if not plex_token and plex is None:
            raise LibraryUnavailableError("Plex token is required.")
        self.plex_url = plex_url
        self.plex_token = plex_token
        self.music_section = music_section
        self._plex = plex
        self._section = section

    def connect(self) -> None:
        if self._section is not None:
            return
        try:
            plex = PlexServer(self.plex_url, self.plex_token)
        except Exception as exc:
            logger.exception("Failed to connect to Plex server at %s", self.plex_url)
            raise LibraryUnavailableError(
                f"Unable to connect to Plex server. Check URL and token. ({exc})"
            ) from exc

        try:
            section = plex.library.section(self.music_section)
        except Exception as exc:
            logger.exception("Music section '%s' not found", self.music_section)
            raise LibraryUnavailableError(f"Music section '{self.music_section}' not found. ({exc})") from exc

        self._plex = plex
        self._section = section

    async def search(self, query: str) -> List[CandidateTrack]:
        return await asyncio.to_thread(self._search, query)

    async def list_tracks(self, filters: TrackFilters) -> List[CandidateTrack]:
        return await asyncio.to_thread(self._list_tracks, filters)

    async def get_similar_tracks(self, track_key: str) -> List[CandidateTrack]:
        return await asyncio.to_thread(self._similar_tracks, track_key)

    async def get_related_tracks(self, track_key: str, limit: int) -> List[CandidateTrack]:
        return await asyncio.to_thread(self._related_tracks, track_key, limit)

    async def find_artist(self, name: str) -> Optional[ArtistRecord]:
        return await asyncio.to_thread(self._find_artist, name)

    async def get_related_artists(self, artist_key: str) -> List[ArtistRecord]:
        return await asyncio.to_thread(self._related_artists, artist_key)

    async def get_artist_top_tracks(self, artist_key: str, limit: int) -> List[CandidateTrack]:
        return await asyncio.to_thread(self._artist_top_tracks, artist_key, limit)

    async def get_recently_added_albums(self, limit: int) -> List[AlbumRecord]:
        return await asyncio.to_thread(self._recent_albums, limit)

    async def get_album_tracks(self, album_key: str) -> List[CandidateTrack]:
        return await asyncio.to_thread(self._album_tracks, album_key)

    async def get_stale_tracks(
        self, stale_days: int, limit: int, max_per_artist: Optional[int] = None
    ) -> List[CandidateTrack]:
        return await asyncio.to_thread(self._stale_tracks, stale_days, limit, max_per_artist)

    async def create_playlist(self, title: str, track_keys: List[str]) -> bool:
        return await asyncio.to_thread(self._create_playlist, title, track_keys)

    def _search(self, query: str) -> List[CandidateTrack]:
        self.connect()
        results = self._section.hubSearch(query, mediatype="track", limit=SEARCH_LIMIT)
        candidates = [candidate_from_plex(item) for item in results if _is_track(item)]
        logger.debug("Search '%s' returned %s tracks", query, len(candidates))
        return candidates

    def _list_tracks(self, filters: TrackFilters) -> List[CandidateTrack]:
        self.connect()
        plex_filters: Dict[str, Any] = {}
        played = filters.get("played")
        if played is True:
            plex_filters["viewCount>>"] = 0
        elif played is False:
            plex_filters["viewCount"] = 0
        if filters.get("viewed_after") is not None:
            plex_filters["lastViewedAt>>"] = filters["viewed_after"]
        if filters.get("viewed_before") is not None:
            plex_filters["lastViewedAt<<"] = filters["viewed_before"]

        kwargs: Dict[str, Any] = {}
        if plex_filters:
            kwargs["filters"] = plex_filters
        if filters.get("sort"):
            kwargs["sort"] = filters["sort"]
        if filters.get("limit"):
            kwargs["maxresults"] = filters["limit"]
        return [candidate_from_plex(item) for item in self._section.searchTracks(**kwargs)]

    def _similar_tracks(self, track_key: str) -> List[CandidateTrack]:
        track = self._fetch(track_key)
        try:
            similar = track.sonicallySimilar()
        except Exception as exc:
            logger.debug("No sonic analysis for %s: %s", track_key, exc)
            similar = []
        return [candidate_from_plex(item) for item in similar if _is_track(item)]

    def _related_tracks(self, track_key: str, limit: int) -> List[CandidateTrack]:
        track = self._fetch(track_key)
        related: List[CandidateTrack] = []
        seen = {str(track_key)}

        def _collect(items: List[Any]) -> None:
            for item in items:
                candidate = candidate_from_plex(item)
                if len(related) >= limit or candidate.rating_key in seen:
                    continue
                seen.add(candidate.rating_key)
                related.append(candidate)

        _collect(track.album().tracks())
        if len(related) < limit:
            _collect(track.artist().tracks())
        return related

    def _find_artist(self, name: str) -> Optional[ArtistRecord]:
        self.connect()
        matches = self._section.searchArtists(title=name, maxresults=1)
        if not matches:
            logger.debug("Artist '%s' not found", name)
            return None
        artist = matches[0]
        return ArtistRecord(key=str(artist.ratingKey), title=artist.title)

    def _related_artists(self, artist_key: str) -> List[ArtistRecord]:
        artist = self._fetch(artist_key)
        related: List[ArtistRecord] = []
        for tag in getattr(artist, "similar", None) or []:
            resolved = self._find_artist(tag.tag)
            if resolved is not None and resolved.key != str(artist_key):
                related.append(resolved)
        return related

    def _artist_top_tracks(self, artist_key: str, limit: int) -> List[CandidateTrack]:
        artist = self._fetch(artist_key)
        try:
            popular = list(artist.popularTracks())
        except Exception as exc:
            logger.debug("No popular tracks hub for %s: %s", artist_key, exc)
            popular = []
        if not popular:
            # Fall back to the listener's own play counts.
            popular = sorted(artist.tracks(), key=lambda t: getattr(t, "viewCount", 0) or 0, reverse=True)
        return [candidate_from_plex(item) for item in popular[:limit]]

    def _recent_albums(self, limit: int) -> List[AlbumRecord]:
        self.connect()
        albums = self._section.recentlyAddedAlbums(maxresults=limit)
        return [
            AlbumRecord(
                key=str(album.ratingKey),
                title=album.title,
                artist=getattr(album, "parentTitle", None),
                added_at=getattr(album, "addedAt", None),
            )
            for album in albums
        ]

    def _album_tracks(self, album_key: str) -> List[CandidateTrack]:
        return [candidate_from_plex(item) for item in self._fetch(album_key).tracks()]

    def _stale_tracks(self, stale_days: int, limit: int, max_per_artist: Optional[int]) -> List[CandidateTrack]:
        cutoff = datetime.now() - timedelta(days=stale_days)
        candidates = self._list_tracks(
            {"played": True, "viewed_before": cutoff, "sort": "lastViewedAt:asc", "limit": limit * 4}
        )
        counts: Counter = Counter()
        stale: List[CandidateTrack] = []
        for candidate in candidates:
            if len(stale) >= limit:
                break
            artist = (candidate.artist or candidate.album_artist or "").lower()
            if max_per_artist is not None and counts[artist] >= max_per_artist:
                continue
            counts[artist] += 1
            stale.append(candidate)
        return stale

    def _create_playlist(self, title: str, track_keys: List[str]) -> bool:
        if not track_keys:
            logger.info("No tracks for playlist '%s'; leaving Plex untouched", title)
            return False
        self.connect()
        try:
            items = [self._fetch(key) for key in track_keys]
            existing = self._find_playlist(title)
            if existing is None:
                self._plex.createPlaylist(title, items=items, section=self._section)
                logger.info("Created playlist '%s' with %s tracks", title, len(items))
            else:
                current = list(existing.items())
                if current:
                    existing.removeItems(current)
                existing.addItems(items)
                logger.info("Replaced %s tracks of playlist '%s' with %s", len(current), title, len(items))
        except Exception:
            logger.exception("Failed to write playlist '%s'", title)
            return False
        return True

    def _find_playlist(self, title: str) -> Any:
        try:
            return self._plex.playlist(title)
        except NotFound:
            return None

    def _fetch(self, key: str) -> Any:
        self.connect()
        return self._plex.fetchItem(int(key))


def candidate_from_plex(item: Any) -> CandidateTrack:
    album_artist = getattr(item, "grandparentTitle", None) or None
    genres = tuple(getattr(genre, "tag", str(genre)) for genre in getattr(item, "genres", None) or [])
    return CandidateTrack(
        rating_key=str(getattr(item, "ratingKey")),
        title=getattr(item, "title", "") or "",
        artist=getattr(item, "originalTitle", None) or album_artist or "",
        album=getattr(item, "parentTitle", None),
        album_artist=album_artist,
        artist_key=_optional_key(getattr(item, "grandparentRatingKey", None)),
        album_key=_optional_key(getattr(item, "parentRatingKey", None)),
        user_rating=getattr(item, "userRating", None),
        view_count=getattr(item, "viewCount", 0) or 0,
        last_viewed_at=getattr(item, "lastViewedAt", None),
        added_at=getattr(item, "addedAt", None),
        year=getattr(item, "parentYear", None) or getattr(item, "year", None),
        genres=genres,
    )


def _optional_key(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _is_track(item: Any) -> bool:
    return (
        bool(getattr(item, "title", ""))
        and getattr(item, "ratingKey", None) is not None
        and getattr(item, "TYPE", getattr(item, "type", "")) == "track"
    )
