"""Tests for settings resolution, including the keychain source."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config import KeychainSettingsSource, Settings
from services.credential_manager import SECRET_KEYS

_SETTINGS_ENV = {
    "DATABASE_URL",
    "LOG_LEVEL",
    "QUEUE_NAME",
    "ACTIVITY_FETCH_MAX_RETRIES",
    "RATE_LIMIT_MAX_RETRIES",
    *SECRET_KEYS,
}


@pytest.fixture
def bare_env():
    """Run with none of the settings variables in the environment."""
    env = {k: v for k, v in os.environ.items() if k not in _SETTINGS_ENV}
    with patch.dict(os.environ, env, clear=True):
        yield env


def _keychain(**secrets):
    return patch("config.read_secret", side_effect=lambda key: secrets.get(key))


class TestKeychainSource:
    def test_fills_secret_from_keychain(self, bare_env):
        with _keychain(MERCURY_WEBHOOK_SECRET="whsec_keychain"):
            s = Settings(_env_file=None)
        assert s.MERCURY_WEBHOOK_SECRET == "whsec_keychain"
        assert s.REDIS_URL == ""

    def test_beats_environment(self, bare_env):
        bare_env["REDIS_URL"] = "redis://env:6379/0"
        with patch.dict(os.environ, bare_env, clear=True), _keychain(REDIS_URL="redis://keychain:6379/0"):
            s = Settings(_env_file=None)
        assert s.REDIS_URL == "redis://keychain:6379/0"

    def test_loses_to_init_kwargs(self, bare_env):
        with _keychain(MERCURY_WEBHOOK_SECRET="whsec_keychain"):
            s = Settings(_env_file=None, MERCURY_WEBHOOK_SECRET="whsec_init")
        assert s.MERCURY_WEBHOOK_SECRET == "whsec_init"

    def test_only_secret_fields_are_looked_up(self, bare_env):
        with patch("config.read_secret", return_value=None) as read:
            Settings(_env_file=None)
        assert {call.args[0] for call in read.call_args_list} == set(SECRET_KEYS)

    def test_sits_between_init_and_env(self):
        sources = Settings.settings_customise_sources(
            Settings,
            init_settings="init",
            env_settings="env",
            dotenv_settings="dotenv",
            file_secret_settings="secrets",
        )
        assert sources[0] == "init"
        assert isinstance(sources[1], KeychainSettingsSource)
        assert sources[2:] == ("env", "dotenv", "secrets")


class TestDefaults:
    def test_sync_defaults(self, bare_env):
        with _keychain():
            s = Settings(_env_file=None)
        assert s.DATABASE_URL == "sqlite:///./ledger.db"
        assert s.QUEUE_NAME == "default"
        assert s.SYNC_LOCK_TTL_SECONDS == 3600
        assert s.DEFAULT_SYNC_LOOKBACK_DAYS == 90
        assert s.ACTIVITY_FETCH_RETRY_DELAY_SECONDS == 10
        assert s.ACTIVITY_FETCH_MAX_RETRIES == 6
        assert s.RATE_LIMIT_BASE_DELAY_SECONDS == 60
        assert s.RATE_LIMIT_MAX_RETRIES == 5
        assert s.WEBHOOK_TOLERANCE_SECONDS == 300

    def test_env_overrides_default(self, bare_env):
        bare_env["ACTIVITY_FETCH_MAX_RETRIES"] = "2"
        with patch.dict(os.environ, bare_env, clear=True), _keychain():
            assert Settings(_env_file=None).ACTIVITY_FETCH_MAX_RETRIES == 2

    @pytest.mark.parametrize("field", ["ACTIVITY_FETCH_MAX_RETRIES", "RATE_LIMIT_MAX_RETRIES", "SYNC_LOCK_TTL_SECONDS"])
    def test_negative_values_rejected(self, bare_env, field):
        with _keychain(), pytest.raises(ValidationError, match=field):
            Settings(_env_file=None, **{field: -1})
