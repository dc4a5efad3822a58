from __future__ import annotations

import logging
from typing import List

from rapidfuzz import fuzz

from plexmix.config import MatchingSettings
from plexmix.models import CandidateTrack, ExternalTrack
from plexmix.services.normalizer import contains_keyword, fold, is_sentinel_artist, normalize

logger = logging.getLogger(__name__)


def score_candidate(external: ExternalTrack, candidate: CandidateTrack, settings: MatchingSettings) -> float:
    """Confidence in [0, 100] that ``candidate`` is the library copy of ``external``."""
    external_title = normalize(external.title, "title", settings)
    external_artist = normalize(external.artist, "artist", settings)
    candidate_title = normalize(candidate.title, "title", settings)
    candidate_artist = normalize(candidate.artist or candidate.album_artist, "artist", settings)

    title_similarity = similarity(external_title, candidate_title)
    artist_similarity = similarity(external_artist, candidate_artist)
    base = settings.title_weight * title_similarity + settings.artist_weight * artist_similarity
    score = base

    bonus = sum(
        settings.priority_bonus
        for keyword in settings.priority_keywords
        if _only_in_candidate(keyword, external, candidate)
    )
    score += min(bonus, settings.max_priority_bonus)

    penalized = [
        keyword for keyword in _penalty_keywords(settings) if _only_in_candidate(keyword, external, candidate)
    ]
    if penalized:
        if _surface_similarity(external, candidate, settings) >= settings.near_perfect_score:
            logger.debug("Keeping near-identical title '%s' despite %s", candidate.title, penalized)
        else:
            score -= settings.keyword_penalty * len(penalized)

    if settings.prefer_non_compilation and _is_compilation(candidate, settings):
        score -= settings.compilation_penalty

    if settings.prefer_higher_rated and score < settings.near_perfect_score:
        rating = candidate.user_rating if candidate.user_rating is not None else 0.0
        if rating < settings.min_rating_for_match:
            score -= settings.low_rating_penalty

    final = float(round(min(100.0, max(0.0, score)), 2))
    logger.debug(
        "Scored '%s' by '%s' against '%s' by '%s': title=%.1f artist=%.1f final=%.2f",
        external.title,
        external.artist,
        candidate.title,
        candidate.artist,
        title_similarity,
        artist_similarity,
        final,
    )
    return final


def is_accepted(score: float, settings: MatchingSettings) -> bool:
    return score >= settings.min_match_score


def similarity(left: str, right: str) -> float:
    """Token similarity that ranks an exact string above a superset of its words.

    ``token_set_ratio`` alone scores "now" against "dont stop me now" at 100;
    averaging with ``token_sort_ratio`` keeps the extra words visible.
    """
    if left == right:
        return 100.0
    return (fuzz.token_set_ratio(left, right) + fuzz.token_sort_ratio(left, right)) / 2


def _penalty_keywords(settings: MatchingSettings) -> List[str]:
    keywords: List[str] = []
    extra = []
    if settings.penalize_mono_versions:
        extra.append("mono")
    if settings.penalize_live_versions:
        extra.append("live")
    for keyword in (*settings.penalty_keywords, *extra):
        folded = fold(keyword)
        if folded and folded not in keywords:
            keywords.append(folded)
    return keywords


def _only_in_candidate(keyword: str, external: ExternalTrack, candidate: CandidateTrack) -> bool:
    return contains_keyword(candidate.title, keyword) and not contains_keyword(external.title, keyword)


def _surface_similarity(external: ExternalTrack, candidate: CandidateTrack, settings: MatchingSettings) -> float:
    # Full titles, nothing stripped: a bracketed "(Live at ...)" counts here.
    title = fuzz.token_sort_ratio(fold(external.title), fold(candidate.title))
    artist = similarity(
        normalize(external.artist, "artist", settings),
        normalize(candidate.artist or candidate.album_artist, "artist", settings),
    )
    return settings.title_weight * title + settings.artist_weight * artist


def _is_compilation(candidate: CandidateTrack, settings: MatchingSettings) -> bool:
    if candidate.is_compilation:
        return True
    return bool(candidate.album_artist) and is_sentinel_artist(candidate.album_artist, settings)
