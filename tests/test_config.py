"""Tests for configuration loading."""

import logging

import pytest

from warninglist.config import EngineConfig, load_config
from warninglist.logging_setup import setup_logging


class TestLoadConfig:
    """Tests for load_config function."""

    def test_defaults(self, monkeypatch):
        """Test config loads defaults with no environment set."""
        for var in (
            "WARNINGLIST_REDIS_URL",
            "WARNINGLIST_CACHE_TIMEOUT",
            "WARNINGLIST_KEY_PREFIX",
            "WARNINGLIST_MEMO_TTL",
            "WARNINGLIST_WARNING_FOR_ALL",
            "WARNINGLIST_DEBUG",
        ):
            monkeypatch.delenv(var, raising=False)

        assert load_config() == EngineConfig()

    def test_custom_values(self, monkeypatch):
        """Test environment values override the defaults."""
        monkeypatch.setenv("WARNINGLIST_REDIS_URL", "redis://cache:6379/1")
        monkeypatch.setenv("WARNINGLIST_CACHE_TIMEOUT", "0.25")
        monkeypatch.setenv("WARNINGLIST_KEY_PREFIX", "tenant:")
        monkeypatch.setenv("WARNINGLIST_MEMO_TTL", "600")
        monkeypatch.setenv("WARNINGLIST_WARNING_FOR_ALL", "true")
        monkeypatch.setenv("WARNINGLIST_DEBUG", "1")

        config = load_config()

        assert config.redis_url == "redis://cache:6379/1"
        assert config.cache_timeout == 0.25
        assert config.key_prefix == "tenant:"
        assert config.memo_ttl == 600
        assert config.warning_for_all is True
        assert config.debug is True

    @pytest.mark.parametrize("value", ["0", "-5", "hour"])
    def test_invalid_memo_ttl_raises(self, monkeypatch, value):
        """Test that a non-positive or non-numeric TTL raises ValueError."""
        monkeypatch.setenv("WARNINGLIST_MEMO_TTL", value)

        with pytest.raises(ValueError, match="WARNINGLIST_MEMO_TTL"):
            load_config()

    def test_invalid_cache_timeout_raises(self, monkeypatch):
        """Test that an invalid cache timeout raises ValueError."""
        monkeypatch.setenv("WARNINGLIST_CACHE_TIMEOUT", "soon")

        with pytest.raises(ValueError, match="WARNINGLIST_CACHE_TIMEOUT"):
            load_config()


class TestSetupLogging:
    """Tests for logging setup."""

    def test_idempotent(self):
        """Test repeated setup does not stack handlers."""
        logger = setup_logging()
        count = len(logger.handlers)

        logger = setup_logging(debug=True)

        assert len(logger.handlers) == count
        assert logger.level == logging.DEBUG
        assert logger.name == "warninglist"
