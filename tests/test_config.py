"""Tests for environment-driven settings."""

import os
from unittest.mock import patch

import pytest

from pluto.config import Settings
from pluto.errors import ConfigError


class TestSettings:
    """Tests for Settings.from_env."""

    def test_defaults(self):
        """Test that an empty environment yields the defaults."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings.from_env()

        assert settings == Settings()
        assert settings.poll_interval == 0.5
        assert settings.cache_ttl == 0.2
        assert settings.heartbeat_interval == 60.0
        assert settings.client_timeout == 120.0
        assert settings.ticker_suffix == "USD"
        assert settings.default_tickers == ()

    def test_overrides(self):
        """Test that every variable is read and normalized."""
        env = {
            "MASSIVE_API_KEY": " key-123 ",
            "PLUTO_POLL_INTERVAL": "0.25",
            "PLUTO_HISTORY_SIZE": "50",
            "PLUTO_TICKER_SUFFIX": "usdt",
            "PLUTO_DEFAULT_TICKERS": "btcusdt, ethusdt,,",
            "PLUTO_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings.from_env()

        assert settings.massive_api_key == "key-123"
        assert settings.poll_interval == 0.25
        assert settings.history_size == 50
        assert settings.ticker_suffix == "USDT"
        assert settings.default_tickers == ("BTCUSDT", "ETHUSDT")
        assert settings.log_level == "DEBUG"

    def test_blank_values_use_defaults(self):
        """Test that blank numeric variables fall back to defaults."""
        with patch.dict(os.environ, {"PLUTO_CACHE_TTL": "  "}, clear=True):
            assert Settings.from_env().cache_ttl == 0.2

    @pytest.mark.parametrize(
        "name, value",
        [
            ("PLUTO_POLL_INTERVAL", "fast"),
            ("PLUTO_SEND_TIMEOUT", "-1"),
            ("PLUTO_HISTORY_SIZE", "2.5"),
            ("PLUTO_CLIENT_TIMEOUT", "0"),
        ],
    )
    def test_invalid_values(self, name, value):
        """Test that unparseable or non-positive numbers raise ConfigError."""
        with patch.dict(os.environ, {name: value}, clear=True):
            with pytest.raises(ConfigError, match=name):
                Settings.from_env()

    def test_settings_are_frozen(self):
        """Test that Settings cannot be mutated."""
        settings = Settings()
        with pytest.raises(AttributeError):
            settings.poll_interval = 1.0
