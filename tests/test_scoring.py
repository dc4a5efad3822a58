from plexmix.config import DEFAULT_MATCHING_SETTINGS, update_matching_settings
from plexmix.models import CandidateTrack, ExternalTrack
from plexmix.services.scoring import is_accepted, score_candidate

HURT = ExternalTrack(title="Hurt", artist="Johnny Cash")


def candidate(title, artist="Johnny Cash", **fields):
    return CandidateTrack(rating_key="1", title=title, artist=artist, **fields)


def test_exact_match_scores_full_marks():
    assert score_candidate(HURT, candidate("Hurt"), DEFAULT_MATCHING_SETTINGS) == 100.0


def test_live_version_scores_lower_than_studio():
    studio = score_candidate(HURT, candidate("Hurt"), DEFAULT_MATCHING_SETTINGS)
    live = score_candidate(HURT, candidate("Hurt (Live at Austin City Limits)"), DEFAULT_MATCHING_SETTINGS)
    assert live < studio


def test_live_penalty_can_be_disabled():
    settings = update_matching_settings(DEFAULT_MATCHING_SETTINGS, {"penalize_live_versions": False})
    assert score_candidate(HURT, candidate("Hurt (Live at Austin City Limits)"), settings) == 100.0


def test_keyword_present_in_both_titles_is_not_penalized():
    external = ExternalTrack(title="Hurt (Live)", artist="Johnny Cash")
    assert score_candidate(external, candidate("Hurt (Live)"), DEFAULT_MATCHING_SETTINGS) == 100.0


def test_karaoke_candidate_is_penalized():
    clean = score_candidate(HURT, candidate("Hurt"), DEFAULT_MATCHING_SETTINGS)
    karaoke = score_candidate(HURT, candidate("Hurt - Karaoke Version"), DEFAULT_MATCHING_SETTINGS)
    assert karaoke < clean


def test_compilation_candidate_is_penalized():
    own_album = score_candidate(HURT, candidate("Hurt", album_artist="Johnny Cash"), DEFAULT_MATCHING_SETTINGS)
    various = score_candidate(HURT, candidate("Hurt", album_artist="Various Artists"), DEFAULT_MATCHING_SETTINGS)
    flagged = score_candidate(HURT, candidate("Hurt", is_compilation=True), DEFAULT_MATCHING_SETTINGS)
    assert various < own_album
    assert flagged < own_album


def test_priority_keyword_bonus_is_capped_at_100():
    external = ExternalTrack(title="Hurt", artist="Johnny Cash")
    settings = update_matching_settings(DEFAULT_MATCHING_SETTINGS, {"strip_parentheses": False})
    remastered = score_candidate(external, candidate("Hurt (Remastered)"), settings)
    plain = score_candidate(external, candidate("Hurt"), settings)
    assert remastered <= 100.0
    assert plain == 100.0


def test_wrong_artist_scores_lower():
    right = score_candidate(HURT, candidate("Hurt"), DEFAULT_MATCHING_SETTINGS)
    wrong = score_candidate(HURT, candidate("Hurt", artist="Nine Inch Nails"), DEFAULT_MATCHING_SETTINGS)
    assert wrong < right


def test_low_rating_penalty_applies_to_unrated_tracks():
    settings = update_matching_settings(
        DEFAULT_MATCHING_SETTINGS, {"prefer_higher_rated": True, "min_rating_for_match": 6}
    )
    external = ExternalTrack(title="Hurts", artist="Johnny Cash")
    rated = score_candidate(external, candidate("Hurt", user_rating=8.0), settings)
    unrated = score_candidate(external, candidate("Hurt"), settings)
    assert unrated < rated


def test_score_is_deterministic_and_bounded():
    tricky = candidate("Hurt (Karaoke Live Demo Cover Instrumental)", album_artist="Various Artists")
    first = score_candidate(HURT, tricky, DEFAULT_MATCHING_SETTINGS)
    assert first == score_candidate(HURT, tricky, DEFAULT_MATCHING_SETTINGS)
    assert 0.0 <= first <= 100.0


def test_threshold_is_inclusive():
    settings = update_matching_settings(DEFAULT_MATCHING_SETTINGS, {"min_match_score": 75})
    assert is_accepted(75.0, settings)
    assert not is_accepted(74.99, settings)


def test_exact_title_outranks_longer_title_containing_it():
    external = ExternalTrack(title="Now", artist="Queen")
    exact = score_candidate(external, candidate("Now", artist="Queen"), DEFAULT_MATCHING_SETTINGS)
    longer = score_candidate(external, candidate("Don't Stop Me Now", artist="Queen"), DEFAULT_MATCHING_SETTINGS)
    assert exact == 100.0
    assert longer < exact


def test_exact_artist_outranks_longer_artist_containing_it():
    external = ExternalTrack(title="Unity", artist="Queen")
    exact = score_candidate(external, candidate("Unity", artist="Queen"), DEFAULT_MATCHING_SETTINGS)
    longer = score_candidate(external, candidate("Unity", artist="Queen Latifah"), DEFAULT_MATCHING_SETTINGS)
    assert longer < exact


def test_near_perfect_match_skips_low_rating_penalty():
    settings = update_matching_settings(
        DEFAULT_MATCHING_SETTINGS, {"prefer_higher_rated": True, "min_rating_for_match": 6}
    )
    assert score_candidate(HURT, candidate("Hurt"), settings) == 100.0


def test_keyword_penalty_waived_when_full_titles_are_close_enough():
    live = candidate("Hurt (Live)")
    penalized = score_candidate(HURT, live, DEFAULT_MATCHING_SETTINGS)
    lenient = update_matching_settings(DEFAULT_MATCHING_SETTINGS, {"near_perfect_score": 75})
    assert penalized == 90.0
    assert score_candidate(HURT, live, lenient) == 100.0
