"""Schema of the shared session document and its validating codec."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import DocumentDecodeError


class Role(str, Enum):
    HOST = "host"
    GUEST = "guest"

    @property
    def other(self) -> "Role":
        return Role.GUEST if self is Role.HOST else Role.HOST


class SessionStatus(str, Enum):
    WAITING = "waiting"
    READY = "ready"
    PLAYING = "playing"
    ENDED = "ended"


class Mode(str, Enum):
    """Who plays the guest role."""

    REMOTE = "remote"
    SCRIPTED = "scripted"
    NONE = "none"


class TimerMode(str, Enum):
    TURN = "turn"
    GAME = "game"


class Outcome(str, Enum):
    HOST = "host"
    GUEST = "guest"
    TIE = "tie"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Card(_Model):
    emoji: str
    pair_id: int = Field(alias="pairId", ge=0)
    matched: bool = False
    matched_by: Optional[Role] = Field(default=None, alias="matchedBy")


class PartySlot(_Model):
    id: str
    ready: bool = False


class PartyFlags(_Model):
    """One boolean per role; used for presence and confirmations."""

    host: bool = False
    guest: bool = False

    def of(self, role: Role) -> bool:
        return getattr(self, role.value)

    def both(self) -> bool:
        return self.host and self.guest


class Scores(_Model):
    host: int = Field(default=0, ge=0)
    guest: int = Field(default=0, ge=0)

    def of(self, role: Role) -> int:
        return getattr(self, role.value)

    def incremented(self, role: Role) -> "Scores":
        return self.model_copy(update={role.value: self.of(role) + 1})

    @property
    def total(self) -> int:
        return self.host + self.guest


class Mismatch(_Model):
    cards: List[int]
    timestamp: float
    by: Role


class SessionDocument(_Model):
    """Authoritative record of one room, replicated through the store."""

    host: PartySlot
    guest: Optional[PartySlot] = None
    status: SessionStatus = SessionStatus.WAITING
    mode: Mode = Mode.REMOTE
    timer_mode: TimerMode = Field(default=TimerMode.TURN, alias="timerMode")
    board_size: int = Field(default=4, alias="boardSize")
    cards: List[Card] = Field(default_factory=list)
    current_turn: Role = Field(default=Role.HOST, alias="currentTurn")
    flipped_cards: List[int] = Field(default_factory=list, alias="flippedCards")
    scores: Scores = Field(default_factory=Scores)
    last_mismatch: Optional[Mismatch] = Field(default=None, alias="lastMismatch")
    time_remaining: int = Field(default=0, alias="timeRemaining")
    winner: Optional[Outcome] = None
    moves: int = 0
    play_again: PartyFlags = Field(default_factory=PartyFlags, alias="playAgain")
    return_to_lobby: PartyFlags = Field(default_factory=PartyFlags, alias="returnToLobby")
    presence: PartyFlags = Field(default_factory=PartyFlags)
    created_at: float = Field(default=0.0, alias="createdAt")

    @model_validator(mode="after")
    def _check_indices(self) -> "SessionDocument":
        if len(set(self.flipped_cards)) != len(self.flipped_cards):
            raise ValueError("flippedCards contains duplicates")
        for index in self.flipped_cards:
            if not 0 <= index < len(self.cards):
                raise ValueError(f"flippedCards refers to missing card {index}")
        return self

    def party(self, role: Role) -> Optional[PartySlot]:
        return self.host if role is Role.HOST else self.guest

    @property
    def total_pairs(self) -> int:
        return len(self.cards) // 2

    @property
    def resolved_pairs(self) -> int:
        return sum(1 for card in self.cards if card.matched) // 2


def decode(raw: Optional[Mapping[str, Any]]) -> Optional[SessionDocument]:
    """Validate a raw snapshot; ``None`` means the document does not exist."""
    if raw is None:
        return None
    try:
        return SessionDocument.model_validate(raw)
    except ValidationError as exc:
        raise DocumentDecodeError(f"Malformed session document: {exc}") from exc


def encode(document: SessionDocument) -> Dict[str, Any]:
    return document.model_dump(by_alias=True, mode="json")


def encode_cards(cards: List[Card]) -> List[Dict[str, Any]]:
    return [card.model_dump(by_alias=True, mode="json") for card in cards]
