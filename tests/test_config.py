"""Tests for src.config — Settings validation and loading."""

import pytest
from pydantic import ValidationError

from src import config
from src.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings(TELEGRAM_BOT_TOKEN="x")
        assert s.dwell_seconds == 5.0
        assert s.exit_grace_seconds == 0.3
        assert s.DUE_CHECK_INTERVAL_SECONDS == 60

    def test_allowed_user_ids_from_string(self):
        s = Settings(TELEGRAM_BOT_TOKEN="x", ALLOWED_USER_IDS="1, 2,,3")
        assert s.ALLOWED_USER_IDS == [1, 2, 3]

    @pytest.mark.parametrize("field", ["NOTIFICATION_DWELL_MS", "DUE_CHECK_INTERVAL_SECONDS"])
    @pytest.mark.parametrize("value", ["0", "-1"])
    def test_durations_must_be_positive(self, field, value):
        with pytest.raises(ValidationError):
            Settings(TELEGRAM_BOT_TOKEN="x", **{field: value})

    def test_zero_exit_grace_allowed(self):
        s = Settings(TELEGRAM_BOT_TOKEN="x", NOTIFICATION_EXIT_MS="0")
        assert s.exit_grace_seconds == 0.0

    def test_negative_exit_grace_rejected(self):
        with pytest.raises(ValidationError):
            Settings(TELEGRAM_BOT_TOKEN="x", NOTIFICATION_EXIT_MS="-5")


class TestLoadSettings:
    def test_invalid_dwell_exits_at_load(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATION_DWELL_MS", "0")
        with pytest.raises(SystemExit):
            config._load_settings()

    def test_missing_token_exits(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "")
        with pytest.raises(SystemExit):
            config._load_settings()

    def test_loaded_settings_build_a_popup_manager(self, clock):
        from src.core.notifications import NotificationTimerManager

        s = config._load_settings()
        NotificationTimerManager(
            clock, lambda event, state: None,
            dwell_seconds=s.dwell_seconds, exit_grace_seconds=s.exit_grace_seconds,
        )
