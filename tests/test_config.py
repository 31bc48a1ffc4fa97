"""
Tests for configuration management.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

import match_herald.config
from match_herald.config import Settings, get_settings


class TestSettingsDefaults:
    """Test default settings."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        polling = settings.polling_config
        assert polling.enabled is True
        assert polling.interval_seconds == 300
        assert polling.initial_delay_seconds == 15
        assert polling.concurrency == 3
        assert polling.match_mode == "competitive"

        rate = settings.rate_limit_config
        assert rate.user_limit == 5
        assert rate.guild_limit == 20
        assert rate.command_window_seconds == 60
        assert rate.destination_limit == 5
        assert rate.destination_window_seconds == 60

        cache = settings.cache_config
        assert cache.matches_ttl == 120
        assert cache.match_ttl == 3600
        assert cache.max_entries is None

    def test_values_from_environment(self):
        with patch.dict(
            os.environ,
            {
                "HENRIK_API_KEY": "key",
                "POLL_INTERVAL_SECONDS": "60",
                "POLL_CONCURRENCY": "8",
                "DESTINATION_POST_LIMIT": "2",
                "CACHE_MAX_ENTRIES": "500",
                "LOG_LEVEL": "debug",
            },
            clear=True,
        ):
            settings = Settings(_env_file=None)

        assert settings.origin_config.api_key == "key"
        assert settings.polling_config.interval_seconds == 60
        assert settings.polling_config.concurrency == 8
        assert settings.rate_limit_config.destination_limit == 2
        assert settings.cache_config.max_entries == 500
        assert settings.log_level == "DEBUG"


class TestSettingsValidation:
    """Test settings validation."""

    @pytest.mark.parametrize(
        "field,value",
        [
            ("log_level", "LOUD"),
            ("log_format", "xml"),
            ("storage_backend", "postgres"),
            ("poll_concurrency", 0),
            ("destination_post_limit", 0),
            ("poll_interval_seconds", 0),
            ("command_window_seconds", -1),
            ("cache_max_entries", -1),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})


def test_get_settings_is_cached():
    match_herald.config._settings_instance = None
    with patch.dict(os.environ, {}, clear=True):
        first = get_settings()
        second = get_settings()

    assert first is second
    assert match_herald.config.settings is first
    match_herald.config._settings_instance = None
