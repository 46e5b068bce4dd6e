"""Runtime settings, overridable through ``MEMORYMATCH_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .document import TimerMode


@dataclass(frozen=True)
class Settings:
    board_size: int = 4
    timer_mode: TimerMode = TimerMode.TURN
    # Per-turn countdown budget (seconds)
    turn_seconds: int = 30
    # Whole-game countdown budget, host-owned (seconds)
    game_seconds: int = 600
    tick_interval: float = 1.0
    # Pause between the second flip and evaluating the pair (seconds)
    reveal_delay: float = 1.0
    code_attempts: int = 10
    turn_warning_seconds: int = 5
    game_warning_seconds: int = 60
    difficulty: str = "medium"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        def get(name: str, default: object) -> str:
            return env.get(f"MEMORYMATCH_{name}", str(default))

        defaults = cls()
        return cls(
            board_size=int(get("BOARD_SIZE", defaults.board_size)),
            timer_mode=TimerMode(get("TIMER_MODE", defaults.timer_mode.value)),
            turn_seconds=int(get("TURN_SECONDS", defaults.turn_seconds)),
            game_seconds=int(get("GAME_SECONDS", defaults.game_seconds)),
            tick_interval=float(get("TICK_INTERVAL", defaults.tick_interval)),
            reveal_delay=float(get("REVEAL_DELAY", defaults.reveal_delay)),
            code_attempts=int(get("CODE_ATTEMPTS", defaults.code_attempts)),
            turn_warning_seconds=int(get("TURN_WARNING_SECONDS", defaults.turn_warning_seconds)),
            game_warning_seconds=int(get("GAME_WARNING_SECONDS", defaults.game_warning_seconds)),
            difficulty=get("DIFFICULTY", defaults.difficulty),
            host=get("HOST", defaults.host),
            port=int(get("PORT", defaults.port)),
            log_level=get("LOG_LEVEL", defaults.log_level).upper(),
        )
