from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    plex_url: str = Field(default="http://plex:32400", alias="PLEX_URL")
    plex_token: str = Field(default="", alias="PLEX_TOKEN")
    default_music_section: str = Field(default="Music", alias="DEFAULT_MUSIC_SECTION")
    app_port: int = Field(default=8080, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="logs", alias="LOG_DIR")
    matching_settings_file: Optional[str] = Field(default=None, alias="MATCHING_SETTINGS_FILE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )


DEFAULT_VERSION_SUFFIX_PATTERNS: Tuple[str, ...] = (
    "remastered",
    "remaster",
    "radio edit",
    "single version",
    "album version",
    "original mix",
    "extended mix",
    "extended version",
    "remix",
    "club mix",
    "explicit",
    "clean",
    "mono",
    "stereo",
    "deluxe edition",
    "bonus track",
)
DEFAULT_FEATURED_ARTIST_PATTERNS: Tuple[str, ...] = (
    "featuring",
    "feat.",
    "feat",
    "ft.",
    "ft",
    "with",
)
DEFAULT_PRIORITY_KEYWORDS: Tuple[str, ...] = (
    "remastered",
    "remaster",
    "album version",
    "original mix",
)
DEFAULT_PENALTY_KEYWORDS: Tuple[str, ...] = (
    "karaoke",
    "instrumental",
    "acapella",
    "a cappella",
    "tribute",
    "cover",
    "demo",
    "commentary",
    "interview",
)
DEFAULT_VARIOUS_ARTISTS_NAMES: Tuple[str, ...] = (
    "various artists",
    "various",
    "va",
    "soundtrack",
    "original soundtrack",
    "unknown",
    "unknown artist",
)


class MatchingSettings(BaseModel):
    """Knobs for normalization and scoring.

    Instances are immutable: a match run keeps the object it was started with
    and later updates produce a new instance through
    :func:`update_matching_settings`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_match_score: float = Field(default=60.0, ge=0, le=100)
    strip_parentheses: bool = True
    strip_brackets: bool = True
    use_first_artist_only: bool = True
    ignore_featured_artists: bool = True
    ignore_remix_info: bool = False
    ignore_version_info: bool = False
    prefer_non_compilation: bool = True
    penalize_mono_versions: bool = True
    penalize_live_versions: bool = True
    prefer_higher_rated: bool = False
    min_rating_for_match: float = Field(default=0.0, ge=0, le=10)

    version_suffix_patterns: Tuple[str, ...] = DEFAULT_VERSION_SUFFIX_PATTERNS
    featured_artist_patterns: Tuple[str, ...] = DEFAULT_FEATURED_ARTIST_PATTERNS
    custom_strip_patterns: Tuple[str, ...] = ()
    priority_keywords: Tuple[str, ...] = DEFAULT_PRIORITY_KEYWORDS
    penalty_keywords: Tuple[str, ...] = DEFAULT_PENALTY_KEYWORDS
    various_artists_names: Tuple[str, ...] = DEFAULT_VARIOUS_ARTISTS_NAMES

    # Scoring magnitudes. Only their relationships matter: title outweighs
    # artist, and penalties stop applying above near_perfect_score.
    title_weight: float = Field(default=0.6, ge=0, le=1)
    artist_weight: float = Field(default=0.4, ge=0, le=1)
    priority_bonus: float = Field(default=3.0, ge=0)
    max_priority_bonus: float = Field(default=6.0, ge=0)
    keyword_penalty: float = Field(default=10.0, ge=0)
    compilation_penalty: float = Field(default=5.0, ge=0)
    low_rating_penalty: float = Field(default=10.0, ge=0)
    near_perfect_score: float = Field(default=99.0, ge=0, le=100)


DEFAULT_MATCHING_SETTINGS = MatchingSettings()


def update_matching_settings(current: MatchingSettings, changes: Mapping[str, Any]) -> MatchingSettings:
    """Return a validated copy of ``current`` with ``changes`` applied."""
    merged = current.model_dump()
    merged.update(changes)
    return MatchingSettings.model_validate(merged)


def load_matching_settings(path: Optional[str]) -> MatchingSettings:
    if not path:
        return DEFAULT_MATCHING_SETTINGS
    settings_path = Path(path)
    if not settings_path.exists():
        logger.info("Matching settings file %s not found; using defaults", settings_path)
        return DEFAULT_MATCHING_SETTINGS
    raw = json.loads(settings_path.read_text(encoding="utf-8"))
    # Fields added after the file was written fall back to their defaults.
    return update_matching_settings(DEFAULT_MATCHING_SETTINGS, raw)


def save_matching_settings(matching: MatchingSettings, path: str) -> None:
    settings_path = Path(path)
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(matching.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Saved matching settings to %s", settings_path)


settings = Settings()
