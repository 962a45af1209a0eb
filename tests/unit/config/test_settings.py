"""Tests for ShipwrightSettings — environment-based configuration."""

import os
from unittest.mock import patch

import pytest

from shipwright.config.settings import ShipwrightSettings, get_settings


class TestDefaults:
    """Test default values when no env vars are set."""

    def test_default_log_settings(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = get_settings()
        assert settings.log_level == "INFO"
        assert settings.log_json is True

    def test_default_timeouts(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = get_settings()
        assert settings.default_timeout == 600.0
        assert settings.connect_timeout == 15.0

    def test_default_health(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = get_settings()
        assert settings.health_poll_interval == 5.0
        assert settings.health_timeout == 120.0

    def test_no_mail_relay_by_default(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = get_settings()
        assert settings.mail_endpoint == ""
        assert settings.has_mail_relay() is False
        assert settings.log_excerpt_lines == 40


class TestEnvOverrides:
    """Test that environment variables override defaults."""

    def test_log_level_uppercased(self):
        with patch.dict(os.environ, {"SHIPWRIGHT_LOG_LEVEL": "debug"}):
            settings = get_settings()
        assert settings.log_level == "DEBUG"

    def test_log_json_false(self):
        with patch.dict(os.environ, {"SHIPWRIGHT_LOG_JSON": "no"}):
            settings = get_settings()
        assert settings.log_json is False

    def test_unrecognized_bool_keeps_default(self):
        with patch.dict(os.environ, {"SHIPWRIGHT_LOG_JSON": "maybe"}):
            settings = get_settings()
        assert settings.log_json is True

    def test_timeouts_override(self):
        env = {
            "SHIPWRIGHT_DEFAULT_TIMEOUT": "30.5",
            "SHIPWRIGHT_CONNECT_TIMEOUT": "3",
            "SHIPWRIGHT_HEALTH_POLL_INTERVAL": "1",
            "SHIPWRIGHT_HEALTH_TIMEOUT": "45",
        }
        with patch.dict(os.environ, env):
            settings = get_settings()
        assert settings.default_timeout == 30.5
        assert settings.connect_timeout == 3.0
        assert settings.health_poll_interval == 1.0
        assert settings.health_timeout == 45.0

    def test_mail_relay(self):
        env = {
            "SHIPWRIGHT_MAIL_ENDPOINT": "https://relay.example.com/send",
            "SHIPWRIGHT_MAIL_SENDER": "deploy@example.com",
        }
        with patch.dict(os.environ, env):
            settings = get_settings()
        assert settings.has_mail_relay() is True
        assert settings.mail_sender == "deploy@example.com"

    def test_invalid_number_raises(self):
        with patch.dict(os.environ, {"SHIPWRIGHT_HEALTH_TIMEOUT": "soon"}):
            with pytest.raises(ValueError):
                get_settings()


class TestImmutability:
    def test_settings_frozen(self):
        settings = ShipwrightSettings()
        with pytest.raises(AttributeError):
            settings.log_level = "DEBUG"  # type: ignore[misc]
