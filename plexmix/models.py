from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

DEFAULT_MAX_SIMILAR_SEEDS = 20
DEFAULT_MAX_SOURCE_ARTISTS = 10


class ExternalTrack(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    artist: str
    album: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.artist} - {self.title}".strip()


class ExternalPlaylist(BaseModel):
    id: str = ""
    name: str
    description: str = ""
    source: str = "csv"
    tracks: List[ExternalTrack] = Field(default_factory=list)


class CandidateTrack(BaseModel):
    """A track as returned by the library backend."""

    model_config = ConfigDict(frozen=True)

    rating_key: str
    title: str = ""
    artist: str = ""
    album: Optional[str] = None
    album_artist: Optional[str] = None
    artist_key: Optional[str] = None
    album_key: Optional[str] = None
    is_compilation: bool = False
    user_rating: Optional[float] = None
    view_count: int = 0
    last_viewed_at: Optional[datetime] = None
    added_at: Optional[datetime] = None
    year: Optional[int] = None
    genres: Tuple[str, ...] = ()


class ArtistRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str


class AlbumRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    artist: Optional[str] = None
    added_at: Optional[datetime] = None


class MatchedTrack(ExternalTrack):
    matched: bool = False
    plex_rating_key: Optional[str] = None
    plex_title: Optional[str] = None
    plex_artist: Optional[str] = None
    score: Optional[float] = None
    best_score: Optional[float] = None

    @model_validator(mode="after")
    def _check_match_fields(self) -> "MatchedTrack":
        has_match = self.plex_rating_key is not None and self.score is not None
        if self.matched != has_match:
            raise ValueError("matched requires plex_rating_key and score, and only then")
        return self


class MatchedPlaylist(BaseModel):
    id: str = ""
    name: str
    description: str = ""
    source: str = "csv"
    tracks: List[MatchedTrack] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def matched_count(self) -> int:
        return sum(1 for track in self.tracks if track.matched)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_count(self) -> int:
        return len(self.tracks)

    @property
    def matched_keys(self) -> List[str]:
        return [track.plex_rating_key for track in self.tracks if track.matched and track.plex_rating_key]


class MixSource(str, Enum):
    ALL = "all"
    PLAYED = "played"
    UNPLAYED = "unplayed"
    RECENTLY_PLAYED = "recently_played"
    TOP_ARTISTS = "top_artists"


class MixSort(str, Enum):
    NONE = "none"
    RANDOM = "random"
    TITLE = "title"
    ARTIST = "artist"
    YEAR = "year"
    RATING = "rating"
    PLAY_COUNT = "play_count"
    LAST_PLAYED = "last_played"
    ADDED = "added"


class MixOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: MixSource = MixSource.ALL
    history_days: int = Field(default=30, ge=1)
    top_artists_count: int = Field(default=10, ge=1)
    tracks_per_artist: int = Field(default=5, ge=1)

    genre: Optional[str] = None
    min_rating: Optional[float] = Field(default=None, ge=0, le=10)
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    added_within_days: Optional[int] = Field(default=None, ge=1)

    track_count: int = Field(default=50, ge=1)
    # None means no per-artist bound.
    max_per_artist: Optional[int] = Field(default=None, ge=1)
    sort_by: MixSort = MixSort.NONE
    shuffle_result: bool = False

    include_similar_tracks: bool = False
    similar_tracks_per_seed: int = Field(default=3, ge=1)
    include_similar_artists: bool = False
    similar_artists_count: int = Field(default=5, ge=1)
    tracks_from_similar_artists: int = Field(default=3, ge=1)

    max_similar_seeds: int = Field(default=DEFAULT_MAX_SIMILAR_SEEDS, ge=1)
    max_source_artists: int = Field(default=DEFAULT_MAX_SOURCE_ARTISTS, ge=1)

    @model_validator(mode="after")
    def _check_year_range(self) -> "MixOptions":
        if self.year_from is not None and self.year_to is not None and self.year_from > self.year_to:
            raise ValueError("year_from must not be after year_to")
        return self


__all__ = [
    "AlbumRecord",
    "ArtistRecord",
    "CandidateTrack",
    "ExternalPlaylist",
    "ExternalTrack",
    "MatchedPlaylist",
    "MatchedTrack",
    "MixOptions",
    "MixSort",
    "MixSource",
]
