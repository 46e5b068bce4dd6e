"""Semantic events emitted by a session towards the UI and audio shells."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from time import time
from typing import Any, Callable, Deque, Dict, List

EventHandler = Callable[["GameEvent"], None]


class EventType(str, Enum):
    CARD_FLIPPED = "cardFlipped"
    MATCH_FOUND = "matchFound"
    MISMATCH = "mismatch"
    TURN_CHANGED = "turnChanged"
    TIMER_WARNING = "timerWarning"
    GAME_WON = "gameWon"
    GAME_LOST = "gameLost"
    GAME_TIED = "gameTied"
    GAME_STARTED = "gameStarted"
    OPPONENT_JOINED = "opponentJoined"
    OPPONENT_LEFT = "opponentLeft"
    REMATCH_REQUESTED = "rematchRequested"
    SESSION_CLOSED = "sessionClosed"
    STATE_CHANGED = "stateChanged"
    STORE_ERROR = "storeError"


@dataclass(frozen=True)
class GameEvent:
    event_type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type.value,
            "payload": self.payload,
            "timestampMs": self.timestamp_ms,
        }

    @classmethod
    def create(cls, event_type: EventType, **payload: Any) -> "GameEvent":
        """Construct an event stamped with the current wall-clock time."""
        return cls(event_type=event_type, payload=payload, timestamp_ms=int(time() * 1000))


class EventStream:
    """Fan-out of events to subscribed handlers, with a bounded history."""

    def __init__(self, history_size: int = 500) -> None:
        self._handlers: List[EventHandler] = []
        self.history: Deque[GameEvent] = deque(maxlen=history_size)

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: GameEvent) -> None:
        self.history.append(event)
        for handler in list(self._handlers):
            handler(event)

    def types(self) -> List[EventType]:
        return [event.event_type for event in self.history]
