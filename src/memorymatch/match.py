"""Turn and match rules over the shared session document.

Every transition is computed from the latest snapshot and returned as a
partial field update, so the caller writes exactly the fields its role owns
for that transition:

- the acting party writes its flips, the resolution of the pair it flipped
  and the resulting turn handoff;
- the host writes game starts, rematch resets and whole-game clock ticks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .document import (
    Card,
    Mode,
    Outcome,
    PartyFlags,
    Role,
    Scores,
    SessionDocument,
    SessionStatus,
    encode_cards,
)
from .errors import InvalidMove
from .events import EventType, GameEvent

Updates = Dict[str, Any]

_CLEARED_CONFIRMATIONS: Updates = {
    "playAgain": PartyFlags().model_dump(),
    "returnToLobby": PartyFlags().model_dump(),
}


@dataclass(frozen=True)
class Resolution:
    """Outcome of evaluating the two face-up cards."""

    role: Role
    indices: Tuple[int, int]
    matched: bool
    updates: Updates
    winner: Optional[Outcome] = None

    @property
    def ended(self) -> bool:
        return self.winner is not None


# ---- queries ----


def available_indices(document: SessionDocument) -> List[int]:
    """Indices that are neither matched nor currently face up."""
    flipped = set(document.flipped_cards)
    return [
        index
        for index, card in enumerate(document.cards)
        if not card.matched and index not in flipped
    ]


def decide_winner(scores: Scores) -> Outcome:
    if scores.host > scores.guest:
        return Outcome.HOST
    if scores.guest > scores.host:
        return Outcome.GUEST
    return Outcome.TIE


def rematch_agreed(document: SessionDocument) -> bool:
    if document.mode is Mode.NONE:
        return document.play_again.host
    return document.play_again.both()


def lobby_agreed(document: SessionDocument) -> bool:
    return document.return_to_lobby.both()


# ---- transitions ----


def validate_flip(document: SessionDocument, role: Role, index: int) -> None:
    if document.status is not SessionStatus.PLAYING:
        raise InvalidMove(role.value, index, "game is not in progress")
    if document.current_turn is not role:
        raise InvalidMove(role.value, index, "not your turn")
    if len(document.flipped_cards) >= 2:
        raise InvalidMove(role.value, index, "two cards are already face up")
    if not 0 <= index < len(document.cards):
        raise InvalidMove(role.value, index, "no card at this index")
    if index in document.flipped_cards:
        raise InvalidMove(role.value, index, "card is already face up")
    if document.cards[index].matched:
        raise InvalidMove(role.value, index, "card is already matched")


def flip_updates(document: SessionDocument, role: Role, index: int) -> Updates:
    validate_flip(document, role, index)
    return {"flippedCards": [*document.flipped_cards, index]}


def resolve_pair(document: SessionDocument, role: Role, now: float) -> Resolution:
    """Evaluate the face-up pair on behalf of the party that flipped it."""
    if document.status is not SessionStatus.PLAYING:
        raise InvalidMove(role.value, None, "game is not in progress")
    if document.current_turn is not role:
        raise InvalidMove(role.value, None, "not your turn")
    if len(document.flipped_cards) != 2:
        raise InvalidMove(role.value, None, "two cards must be face up")

    first, second = document.flipped_cards
    is_match = document.cards[first].pair_id == document.cards[second].pair_id
    updates: Updates = {"flippedCards": [], "moves": document.moves + 1}
    winner: Optional[Outcome] = None

    if is_match:
        scores = document.scores.incremented(role)
        cards = [
            card.model_copy(update={"matched": True, "matched_by": role})
            if index in (first, second)
            else card
            for index, card in enumerate(document.cards)
        ]
        updates["scores"] = scores.model_dump()
        updates["cards"] = encode_cards(cards)
        # Same party keeps the turn after a match.
        if scores.total >= document.total_pairs:
            winner = Outcome.HOST if document.mode is Mode.NONE else decide_winner(scores)
            updates.update(end_updates(winner))
    else:
        updates["lastMismatch"] = {"cards": [first, second], "timestamp": now, "by": role.value}
        if document.mode is not Mode.NONE:
            updates["currentTurn"] = role.other.value

    return Resolution(
        role=role,
        indices=(first, second),
        matched=is_match,
        updates=updates,
        winner=winner,
    )


def timeout_updates(document: SessionDocument, role: Role) -> Updates:
    """Turn budget ran out for ``role``: hide its cards and hand the turn over."""
    if document.status is not SessionStatus.PLAYING:
        raise InvalidMove(role.value, None, "game is not in progress")
    if document.current_turn is not role:
        raise InvalidMove(role.value, None, "not your turn")
    return {"flippedCards": [], "currentTurn": role.other.value}


def end_updates(winner: Outcome) -> Updates:
    return {
        "status": SessionStatus.ENDED.value,
        "winner": winner.value,
        "flippedCards": [],
        **_CLEARED_CONFIRMATIONS,
    }


def time_up_updates(document: SessionDocument) -> Updates:
    """Whole-game clock expired: the higher score at this instant wins."""
    if document.status is not SessionStatus.PLAYING:
        raise InvalidMove(Role.HOST.value, None, "game is not in progress")
    return {**end_updates(decide_winner(document.scores)), "timeRemaining": 0}


def start_updates(cards: List[Card], time_budget: int) -> Updates:
    """Fresh game on a new deck; also used for rematches."""
    return {
        "cards": encode_cards(cards),
        "boardSize": _side_of(len(cards)),
        "status": SessionStatus.PLAYING.value,
        "currentTurn": Role.HOST.value,
        "flippedCards": [],
        "scores": Scores().model_dump(),
        "lastMismatch": None,
        "timeRemaining": time_budget,
        "winner": None,
        "moves": 0,
        **_CLEARED_CONFIRMATIONS,
    }


def lobby_updates(document: SessionDocument) -> Updates:
    """Back to the waiting room with the same guest, who must ready up again."""
    updates: Updates = {
        "status": (SessionStatus.READY if document.guest else SessionStatus.WAITING).value,
        "cards": [],
        "flippedCards": [],
        "scores": Scores().model_dump(),
        "lastMismatch": None,
        "winner": None,
        "moves": 0,
        "timeRemaining": 0,
        **_CLEARED_CONFIRMATIONS,
    }
    if document.guest:
        updates["guest/ready"] = False
    return updates


def confirmation_updates(role: Role, *, play_again: bool) -> Updates:
    """Choosing one end-of-game option withdraws the other."""
    return {
        f"playAgain/{role.value}": play_again,
        f"returnToLobby/{role.value}": not play_again,
    }


def _side_of(card_count: int) -> int:
    side = 1
    while side * side < card_count:
        side += 1
    return side


# ---- reconciliation ----


def outcome_event(winner: Optional[Outcome], role: Role, scores: Scores) -> GameEvent:
    payload = {"winner": winner.value if winner else None, "scores": scores.model_dump()}
    if winner is Outcome.TIE:
        return GameEvent.create(EventType.GAME_TIED, **payload)
    if winner is not None and winner.value == role.value:
        return GameEvent.create(EventType.GAME_WON, **payload)
    return GameEvent.create(EventType.GAME_LOST, **payload)


def reconcile(
    previous: Optional[SessionDocument], current: SessionDocument, role: Role
) -> List[GameEvent]:
    """Diff two snapshots into the UI events the local party has not seen.

    Legality is not re-checked: the writer validated its own transition.
    """
    if previous is None or previous.status is not SessionStatus.PLAYING:
        if current.status is SessionStatus.PLAYING:
            return [
                GameEvent.create(
                    EventType.GAME_STARTED,
                    boardSize=current.board_size,
                    currentTurn=current.current_turn.value,
                )
            ]
        return []
    if current.status not in (SessionStatus.PLAYING, SessionStatus.ENDED):
        return []
    if len(previous.cards) != len(current.cards):
        return []

    events: List[GameEvent] = []
    shown = set(previous.flipped_cards)
    for index in current.flipped_cards:
        if index not in shown:
            events.append(
                GameEvent.create(
                    EventType.CARD_FLIPPED,
                    index=index,
                    emoji=current.cards[index].emoji,
                    by=current.current_turn.value,
                )
            )

    newly_matched = [
        index
        for index, card in enumerate(current.cards)
        if card.matched and not previous.cards[index].matched
    ]
    if current.resolved_pairs > previous.resolved_pairs and newly_matched:
        by = current.cards[newly_matched[0]].matched_by
        events.append(
            GameEvent.create(
                EventType.MATCH_FOUND,
                indices=newly_matched,
                pairIds=sorted({current.cards[index].pair_id for index in newly_matched}),
                by=by.value if by else None,
                scores=current.scores.model_dump(),
            )
        )

    if current.current_turn is not previous.current_turn:
        events.append(
            GameEvent.create(
                EventType.TURN_CHANGED,
                currentTurn=current.current_turn.value,
                isLocalTurn=current.current_turn is role,
            )
        )

    mismatch = current.last_mismatch
    if mismatch is not None and mismatch != previous.last_mismatch and mismatch.by is not role:
        events.append(GameEvent.create(EventType.MISMATCH, cards=list(mismatch.cards), by=mismatch.by.value))

    if current.status is SessionStatus.ENDED:
        events.append(outcome_event(current.winner, role, current.scores))
    return events
