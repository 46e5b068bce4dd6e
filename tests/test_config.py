"""Tests for environment-driven settings."""

import pytest

from memorymatch.config import Settings
from memorymatch.document import TimerMode


def test_defaults_without_environment():
    settings = Settings.from_env({})
    assert settings == Settings()
    assert settings.turn_seconds == 30
    assert settings.game_seconds == 600


def test_environment_overrides():
    settings = Settings.from_env(
        {
            "MEMORYMATCH_TIMER_MODE": "game",
            "MEMORYMATCH_GAME_SECONDS": "120",
            "MEMORYMATCH_REVEAL_DELAY": "0.25",
            "MEMORYMATCH_LOG_LEVEL": "debug",
            "MEMORYMATCH_PORT": "9000",
        }
    )
    assert settings.timer_mode is TimerMode.GAME
    assert settings.game_seconds == 120
    assert settings.reveal_delay == 0.25
    assert settings.log_level == "DEBUG"
    assert settings.port == 9000


def test_bad_timer_mode_rejected():
    with pytest.raises(ValueError):
        Settings.from_env({"MEMORYMATCH_TIMER_MODE": "sudden-death"})
