import json

import pytest
from pydantic import ValidationError

from plexmix.config import (
    DEFAULT_MATCHING_SETTINGS,
    Settings,
    load_matching_settings,
    save_matching_settings,
    update_matching_settings,
)


def test_defaults():
    settings = DEFAULT_MATCHING_SETTINGS
    assert settings.min_match_score == 60
    assert settings.strip_parentheses and settings.strip_brackets
    assert settings.use_first_artist_only and settings.ignore_featured_artists
    assert not settings.ignore_remix_info and not settings.ignore_version_info
    assert settings.prefer_non_compilation
    assert settings.penalize_mono_versions and settings.penalize_live_versions
    assert "feat." in settings.featured_artist_patterns
    assert "various artists" in settings.various_artists_names


def test_update_returns_new_instance():
    updated = update_matching_settings(DEFAULT_MATCHING_SETTINGS, {"min_match_score": 80})
    assert updated.min_match_score == 80
    assert DEFAULT_MATCHING_SETTINGS.min_match_score == 60


def test_settings_are_immutable():
    with pytest.raises(ValidationError):
        DEFAULT_MATCHING_SETTINGS.min_match_score = 10


def test_update_rejects_unknown_and_out_of_range_fields():
    with pytest.raises(ValidationError):
        update_matching_settings(DEFAULT_MATCHING_SETTINGS, {"no_such_field": True})
    with pytest.raises(ValidationError):
        update_matching_settings(DEFAULT_MATCHING_SETTINGS, {"min_match_score": 150})


def test_save_and_load(tmp_path):
    path = tmp_path / "nested" / "matching.json"
    updated = update_matching_settings(DEFAULT_MATCHING_SETTINGS, {"custom_strip_patterns": ["(Official Video)"]})

    save_matching_settings(updated, str(path))

    assert load_matching_settings(str(path)) == updated


def test_load_fills_missing_fields_with_defaults(tmp_path):
    path = tmp_path / "matching.json"
    path.write_text(json.dumps({"min_match_score": 70}), encoding="utf-8")

    loaded = load_matching_settings(str(path))

    assert loaded.min_match_score == 70
    assert loaded.strip_brackets is True


def test_load_without_file_uses_defaults(tmp_path):
    assert load_matching_settings(None) == DEFAULT_MATCHING_SETTINGS
    assert load_matching_settings(str(tmp_path / "missing.json")) == DEFAULT_MATCHING_SETTINGS


def test_environment_settings(monkeypatch):
    monkeypatch.setenv("PLEX_URL", "http://localhost:32400")
    monkeypatch.setenv("APP_PORT", "9090")
    settings = Settings()
    assert settings.plex_url == "http://localhost:32400"
    assert settings.app_port == 9090
