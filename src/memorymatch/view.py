"""Per-party view model derived from the latest session snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .document import Role, SessionDocument


@dataclass(frozen=True)
class ViewModel:
    room_code: Optional[str]
    role: Optional[str]
    mode: Optional[str]
    status: Optional[str]
    board_size: int = 0
    cards: List[Dict[str, Any]] = field(default_factory=list)
    flipped_indices: List[int] = field(default_factory=list)
    matched_pair_ids: List[int] = field(default_factory=list)
    scores: Dict[str, int] = field(default_factory=dict)
    current_turn: Optional[str] = None
    is_local_turn: bool = False
    seconds_remaining: Optional[int] = None
    winner: Optional[str] = None
    moves: int = 0
    elapsed_seconds: int = 0
    opponent_present: bool = False
    opponent_ready: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roomCode": self.room_code,
            "role": self.role,
            "mode": self.mode,
            "status": self.status,
            "boardSize": self.board_size,
            "cards": list(self.cards),
            "flippedIndices": list(self.flipped_indices),
            "matchedPairIds": list(self.matched_pair_ids),
            "scores": dict(self.scores),
            "currentTurn": self.current_turn,
            "isLocalTurn": self.is_local_turn,
            "secondsRemaining": self.seconds_remaining,
            "winner": self.winner,
            "moves": self.moves,
            "elapsedSeconds": self.elapsed_seconds,
            "opponentPresent": self.opponent_present,
            "opponentReady": self.opponent_ready,
        }


EMPTY_VIEW = ViewModel(room_code=None, role=None, mode=None, status=None)


def build_view(
    document: SessionDocument,
    *,
    code: str,
    role: Role,
    seconds_remaining: Optional[int] = None,
    elapsed_seconds: int = 0,
) -> ViewModel:
    flipped = set(document.flipped_cards)
    opponent = document.party(role.other)
    cards = []
    for index, card in enumerate(document.cards):
        face_up = card.matched or index in flipped
        cards.append(
            {
                "index": index,
                "emoji": card.emoji if face_up else None,
                "faceUp": face_up,
                "matched": card.matched,
            }
        )
    return ViewModel(
        room_code=code,
        role=role.value,
        mode=document.mode.value,
        status=document.status.value,
        board_size=document.board_size,
        cards=cards,
        flipped_indices=list(document.flipped_cards),
        matched_pair_ids=sorted({card.pair_id for card in document.cards if card.matched}),
        scores=document.scores.model_dump(),
        current_turn=document.current_turn.value,
        is_local_turn=document.current_turn is role,
        seconds_remaining=seconds_remaining,
        winner=document.winner.value if document.winner else None,
        moves=document.moves,
        elapsed_seconds=elapsed_seconds,
        opponent_present=opponent is not None and document.presence.of(role.other),
        opponent_ready=opponent is not None and opponent.ready,
    )
