"""
Unit tests for settings and logging configuration.
"""

import logging

import pytest
from pydantic import ValidationError

from prerender_audit.config import Settings, get_settings
from prerender_audit.logger import LOGGER_NAME, configure, get_logger


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        """Test the default configuration."""
        monkeypatch.delenv("PRERENDER_CONTENT_GAIN_THRESHOLD", raising=False)
        settings = Settings(_env_file=None)

        assert settings.storage_prefix == "prerender"
        assert settings.content_gain_threshold == 1.2
        assert settings.top_pages_limit == 25
        assert settings.max_concurrency == 10
        assert settings.poll_interval_ms == 30_000
        assert settings.max_wait_ms == 600_000
        assert settings.forbidden_policy == "all"
        assert settings.wait_for_scrapes is False

    def test_environment_overrides(self, monkeypatch):
        """Test that PRERENDER_* variables are read."""
        monkeypatch.setenv("PRERENDER_CONTENT_GAIN_THRESHOLD", "1.5")
        monkeypatch.setenv("PRERENDER_WAIT_FOR_SCRAPES", "true")
        monkeypatch.setenv("PRERENDER_FORBIDDEN_POLICY", "any")

        settings = Settings(_env_file=None)

        assert settings.content_gain_threshold == 1.5
        assert settings.wait_for_scrapes is True
        assert settings.forbidden_policy == "any"

    def test_invalid_policy_rejected(self):
        """Test that an unknown forbidden policy is rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, forbidden_policy="some")

    def test_get_settings_cached(self):
        """Test that get_settings returns one instance."""
        get_settings.cache_clear()

        assert get_settings() is get_settings()


class TestLogger:
    """Tests for logging helpers."""

    def test_get_logger_namespace(self):
        """Test that loggers live under the package logger."""
        assert get_logger("cli").name == f"{LOGGER_NAME}.cli"
        assert get_logger(f"{LOGGER_NAME}.fetcher").name == f"{LOGGER_NAME}.fetcher"

    def test_configure_with_file(self, tmp_path):
        """Test that a rotating log file receives records."""
        log_file = tmp_path / "logs" / "audit.log"
        logger = configure("DEBUG", log_file)

        try:
            get_logger("test").debug("hello from test")
            for handler in logger.handlers:
                handler.flush()

            assert logger.level == logging.DEBUG
            assert len(logger.handlers) == 2
            assert "hello from test" in log_file.read_text(encoding="utf-8")
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers.clear()

    def test_configure_is_repeatable(self):
        """Test that reconfiguring does not stack handlers."""
        configure("INFO")
        logger = configure("WARNING")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        logger.handlers.clear()
