"""
Tests for the config module.

Tests cover:
- Defaults when no variables are set
- Numeric parsing and range checks
- SMTP configuration detection
- Run mode validation
"""

import os
from unittest.mock import patch

import pytest

from pricing_radar.config import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_COOLDOWN_HOURS,
    DEFAULT_REQUEST_DELAY,
    RUN_MODE_DAEMON,
    RUN_MODE_ONCE,
    is_email_configured,
    load_config,
    load_smtp_config,
)


SMTP_ENV = {
    "SMTP_HOST": "smtp.example.com",
    "SMTP_PORT": "587",
    "SMTP_USER": "radar@example.com",
    "SMTP_PASSWORD": "secret",
    "EMAIL_FROM": "radar@example.com",
}


class TestLoadConfig:
    """Tests for load_config."""

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        """Test the production defaults."""
        config = load_config()

        assert config.confidence_threshold == DEFAULT_CONFIDENCE_THRESHOLD == 0.6
        assert config.cooldown_hours == DEFAULT_COOLDOWN_HOURS == 24.0
        assert config.request_delay == DEFAULT_REQUEST_DELAY == 2.0
        assert config.fetch_timeout == 15
        assert config.max_page_chars == 8000
        assert config.diff_context_chars == 3000
        assert config.run_mode == RUN_MODE_ONCE
        assert config.schedule_hour == 2
        assert config.schedule_minute == 0
        assert config.gemini_api_key is None
        assert config.smtp is None
        assert config.dry_run is False
        assert config.health_port is None
        assert config.log_level == "INFO"

    @patch.dict(os.environ, {
        "CONFIDENCE_THRESHOLD": "0.75",
        "COOLDOWN_HOURS": "12",
        "REQUEST_DELAY": "0",
        "RUN_MODE": "Daemon",
        "RUN_ON_START": "true",
        "SCHEDULE_HOUR": "0",
        "SCHEDULE_MINUTE": "30",
        "HEALTH_PORT": "8080",
        "GEMINI_API_KEY": "key",
        "DRY_RUN": "1",
        "LOG_LEVEL": "debug",
    }, clear=True)
    def test_overrides(self):
        """Test that environment variables override defaults."""
        config = load_config()

        assert config.confidence_threshold == 0.75
        assert config.cooldown_hours == 12.0
        assert config.request_delay == 0.0
        assert config.run_mode == RUN_MODE_DAEMON
        assert config.run_on_start is True
        assert config.schedule_hour == 0
        assert config.schedule_minute == 30
        assert config.health_port == 8080
        assert config.gemini_api_key == "key"
        assert config.dry_run is True
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize("name,value", [
        ("CONFIDENCE_THRESHOLD", "1.5"),
        ("CONFIDENCE_THRESHOLD", "high"),
        ("COOLDOWN_HOURS", "-1"),
        ("SCHEDULE_HOUR", "24"),
        ("HEALTH_PORT", "http"),
        ("RUN_MODE", "forever"),
    ])
    def test_invalid_values(self, name, value):
        """Test that bad values raise ValueError naming the variable."""
        with patch.dict(os.environ, {name: value}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                load_config()

        assert name in str(exc_info.value)

    @patch.dict(os.environ, SMTP_ENV, clear=True)
    def test_smtp_loaded_when_configured(self):
        """Test that a complete SMTP environment yields SmtpConfig."""
        config = load_config()

        assert config.smtp is not None
        assert config.smtp.host == "smtp.example.com"
        assert config.smtp.port == 587


class TestSmtpConfig:
    """Tests for SMTP environment handling."""

    @patch.dict(os.environ, SMTP_ENV, clear=True)
    def test_configured(self):
        """Test detection of a complete SMTP environment."""
        assert is_email_configured() is True

    @patch.dict(os.environ, {**SMTP_ENV, "SMTP_PASSWORD": "  "}, clear=True)
    def test_blank_value(self):
        """Test that a blank variable means not configured."""
        assert is_email_configured() is False

    @patch.dict(os.environ, {**SMTP_ENV, "EMAIL_REPLY_TO": "help@example.com"}, clear=True)
    def test_reply_to(self):
        """Test that the optional reply-to is read."""
        assert load_smtp_config().reply_to == "help@example.com"

    @patch.dict(os.environ, {**SMTP_ENV, "SMTP_PORT": "smtp"}, clear=True)
    def test_invalid_port(self):
        """Test that a non-numeric port is rejected."""
        with pytest.raises(ValueError):
            load_smtp_config()

    @patch.dict(os.environ, {k: v for k, v in SMTP_ENV.items() if k != "SMTP_HOST"}, clear=True)
    def test_missing_host(self):
        """Test that a missing required variable is rejected."""
        with pytest.raises(ValueError):
            load_smtp_config()
