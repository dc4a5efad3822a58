from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, Literal, Optional, Pattern, Tuple

from unidecode import unidecode

from plexmix.config import MatchingSettings

Role = Literal["title", "artist"]

PARENTHESES = re.compile(r"\([^()]*\)")
BRACKETS = re.compile(r"\[[^\[\]]*\]")
ARTIST_SEPARATORS = re.compile(r"\s*(?:,|&|;|\band\b)\s*", re.IGNORECASE)
DROPPED_PUNCTUATION = re.compile(r"['./]")
NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")
WHITESPACE = re.compile(r"\s+")


def normalize(raw: Optional[str], role: Role, settings: MatchingSettings) -> str:
    """Reduce a title or artist to the form used for comparison.

    Stripping can expose new matches (removing punctuation can reveal a
    featured-artist marker), so passes repeat until the text is stable.
    Every pass after the first only deletes characters, which bounds the loop.
    """
    current = _normalize_once(raw or "", role, settings)
    while True:
        following = _normalize_once(current, role, settings)
        if following == current:
            return current
        current = following


def is_sentinel_artist(name: Optional[str], settings: MatchingSettings) -> bool:
    """True for placeholder names such as "Various Artists" or "Unknown"."""
    folded = fold(name)
    if not folded:
        return True
    return folded in _sentinel_names(settings.various_artists_names)


def fold(text: Optional[str]) -> str:
    """Lower-case ASCII with punctuation removed, nothing stripped."""
    cleaned = unidecode(text or "").lower()
    cleaned = cleaned.replace("$", "s")
    cleaned = DROPPED_PUNCTUATION.sub("", cleaned)
    cleaned = NON_ALPHANUMERIC.sub(" ", cleaned)
    return WHITESPACE.sub(" ", cleaned).strip()


def contains_keyword(text: Optional[str], keyword: str) -> bool:
    """Word-bounded keyword search on folded text ("live" is not in "alive")."""
    folded_keyword = fold(keyword)
    if not folded_keyword:
        return False
    return f" {folded_keyword} " in f" {fold(text)} "


def first_artist(artist: str, settings: MatchingSettings) -> str:
    """Primary artist of a credit, keeping the original spelling."""
    truncated = _truncate_featured(artist, settings.featured_artist_patterns)
    return ARTIST_SEPARATORS.split(truncated, maxsplit=1)[0].strip() or artist.strip()


def _normalize_once(text: str, role: Role, settings: MatchingSettings) -> str:
    value = text.lower().strip()

    if role == "title":
        if settings.strip_parentheses:
            value = _remove_nested(PARENTHESES, value)
        if settings.strip_brackets:
            value = _remove_nested(BRACKETS, value)
        if settings.ignore_version_info:
            for pattern in _version_suffixes(settings.version_suffix_patterns):
                value = pattern.sub("", value)
        if settings.ignore_remix_info:
            for pattern in _remix_descriptors(settings.version_suffix_patterns):
                value = pattern.sub(" ", value)

    for pattern in settings.custom_strip_patterns:
        if pattern:
            value = re.sub(re.escape(pattern), "", value, flags=re.IGNORECASE)

    if role == "artist":
        if settings.ignore_featured_artists:
            value = _truncate_featured(value, settings.featured_artist_patterns)
        if settings.use_first_artist_only:
            value = ARTIST_SEPARATORS.split(value, maxsplit=1)[0]

    return fold(value)


def _remove_nested(pattern: Pattern[str], value: str) -> str:
    # Inner spans go first so "(a (b))" disappears completely.
    while True:
        stripped = pattern.sub(" ", value)
        if stripped == value:
            return value
        value = stripped


def _truncate_featured(value: str, patterns: Iterable[str]) -> str:
    cut = len(value)
    for pattern in _featured_markers(tuple(patterns)):
        match = pattern.search(value)
        if match and match.start() < cut:
            cut = match.start()
    return value[:cut]


@lru_cache(maxsize=32)
def _featured_markers(patterns: Tuple[str, ...]) -> List[Pattern[str]]:
    return [
        re.compile(rf"(?<!\w){re.escape(p.strip())}(?!\w)", re.IGNORECASE)
        for p in patterns
        if p.strip()
    ]


@lru_cache(maxsize=32)
def _version_suffixes(patterns: Tuple[str, ...]) -> List[Pattern[str]]:
    compiled: List[Pattern[str]] = []
    for p in patterns:
        escaped = re.escape(p.strip().lower())
        if not escaped:
            continue
        year = r"(?:\d{4}\s+)?"
        compiled.append(re.compile(rf"\s+-\s+{year}{escaped}\b.*$"))
        compiled.append(re.compile(rf"\s*\(\s*{year}{escaped}\b[^()]*\)\s*$"))
    return compiled


@lru_cache(maxsize=32)
def _remix_descriptors(patterns: Tuple[str, ...]) -> List[Pattern[str]]:
    compiled: List[Pattern[str]] = []
    for p in patterns:
        keyword = p.strip().lower()
        if "remix" not in keyword:
            continue
        escaped = re.escape(keyword)
        compiled.append(re.compile(rf"\([^()]*\b{escaped}\b[^()]*\)"))
        compiled.append(re.compile(rf"\[[^\[\]]*\b{escaped}\b[^\[\]]*\]"))
        compiled.append(re.compile(rf"\s+-\s+[^-]*\b{escaped}\b.*$"))
        compiled.append(re.compile(rf"\b{escaped}\b"))
    return compiled


@lru_cache(maxsize=32)
def _sentinel_names(names: Tuple[str, ...]) -> frozenset:
    return frozenset(fold(name) for name in names if fold(name))
