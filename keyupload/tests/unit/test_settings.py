"""Unit tests for key upload settings."""

import pytest
from pydantic import ValidationError

from keyupload.config import KeyUploadSettings, get_settings


def test_settings_defaults():
    """Test that settings have expected defaults."""
    settings = KeyUploadSettings(_env_file=None)

    assert settings.rpc_timeout_seconds == 30.0
    assert settings.padding_target_bytes == 5000
    assert settings.cover_traffic_interval_hours == 4.0
    assert settings.cover_traffic_execution_probability == pytest.approx(1 / 12)
    assert settings.cover_traffic_request_code_probability == pytest.approx(1 / 6)
    assert settings.cover_traffic_short_delay_probability == pytest.approx(0.8)
    assert settings.cover_traffic_max_short_delay_seconds == 10.0
    assert settings.cover_traffic_max_long_delay_seconds == 25 * 3600
    assert settings.cover_traffic_long_delay_threshold_seconds == 24 * 3600
    assert settings.cover_traffic_fake_key_count == 14


def test_settings_can_override_via_env(monkeypatch):
    """Test that settings can be overridden via environment variables."""
    monkeypatch.setenv("KEYUPLOAD_KEY_UPLOAD_URL", "https://keys.example.org/v1/publish")
    monkeypatch.setenv("KEYUPLOAD_VERIFICATION_API_KEY", "secret")
    monkeypatch.setenv("KEYUPLOAD_COVER_TRAFFIC_EXECUTION_PROBABILITY", "0.5")

    settings = KeyUploadSettings(_env_file=None)

    assert settings.key_upload_url == "https://keys.example.org/v1/publish"
    assert settings.verification_api_key == "secret"
    assert settings.cover_traffic_execution_probability == 0.5


def test_probabilities_are_validated(monkeypatch):
    monkeypatch.setenv("KEYUPLOAD_COVER_TRAFFIC_SHORT_DELAY_PROBABILITY", "1.5")

    with pytest.raises(ValidationError):
        KeyUploadSettings(_env_file=None)


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()
