"""
Tests for settings loading - discord_notify/core/config.py
"""
import pytest
from pydantic import ValidationError

from discord_notify.core.config import DEFAULT_QUEUE_DB_PATH, Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:

    @pytest.mark.unit
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DISCORD_WEBHOOK_URL", raising=False)
        monkeypatch.delenv("DISCORD_NOTIFY_QUEUE_DB_PATH", raising=False)

        settings = _settings()

        assert settings.DISCORD_WEBHOOK_URL is None
        assert settings.DISCORD_WEBHOOK_EXCLUDE_INPUT_CONTEXT is True
        assert settings.DISCORD_WEBHOOK_COMPLETE_INCLUDE_LAST_MESSAGE is True
        assert settings.DISCORD_WEBHOOK_SHOW_ERROR_ALERT is True
        assert settings.DISCORD_NOTIFY_QUEUE_DB_PATH == DEFAULT_QUEUE_DB_PATH
        assert settings.QUEUE_MAX_RETRIES == 5
        assert settings.wait_on_rate_limit_seconds == 10.0

    @pytest.mark.unit
    def test_blank_strings_are_unset(self):
        settings = _settings(
            DISCORD_WEBHOOK_URL="   ",
            DISCORD_WEBHOOK_USERNAME="",
            DISCORD_WEBHOOK_COMPLETE_MENTION=" @here ",
        )

        assert settings.DISCORD_WEBHOOK_URL is None
        assert settings.DISCORD_WEBHOOK_USERNAME is None
        assert settings.DISCORD_WEBHOOK_COMPLETE_MENTION == "@here"

    @pytest.mark.unit
    def test_blank_db_path_uses_default(self):
        assert _settings(DISCORD_NOTIFY_QUEUE_DB_PATH=" ").DISCORD_NOTIFY_QUEUE_DB_PATH == (
            DEFAULT_QUEUE_DB_PATH
        )

    @pytest.mark.unit
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.invalid/api/webhooks/1/x")
        monkeypatch.setenv("DISCORD_WEBHOOK_EXCLUDE_INPUT_CONTEXT", "0")
        monkeypatch.setenv("DISCORD_WEBHOOK_WAIT_ON_RATE_LIMIT_MS", "2500")

        settings = _settings()

        assert settings.DISCORD_WEBHOOK_URL == "https://discord.invalid/api/webhooks/1/x"
        assert settings.DISCORD_WEBHOOK_EXCLUDE_INPUT_CONTEXT is False
        assert settings.wait_on_rate_limit_seconds == 2.5

    @pytest.mark.unit
    @pytest.mark.parametrize("field,value", [
        ("DISCORD_WEBHOOK_WAIT_ON_RATE_LIMIT_MS", -1),
        ("QUEUE_MAX_RETRIES", -1),
        ("QUEUE_POLL_INTERVAL_SECONDS", -0.5),
        ("HTTP_TIMEOUT_SECONDS", 0),
        ("ALERT_COOLDOWN_SECONDS", -1),
    ])
    def test_rejects_invalid_numbers(self, field, value):
        with pytest.raises(ValidationError):
            _settings(**{field: value})
