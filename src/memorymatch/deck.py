"""Shuffled, paired decks for square boards."""

from __future__ import annotations

import random
from typing import Dict, List, Optional, Tuple

from .document import Card

EMOJIS: Tuple[str, ...] = (
    "🐶", "🐱", "🐭", "🐹", "🐰", "🦊", "🐻", "🐼",
    "🐨", "🐯", "🦁", "🐮", "🐷", "🐸", "🐵", "🐔",
    "🦄", "🐝", "🦋", "🐢", "🐙", "🦀", "🐬", "🦈",
    "🌸", "🌺", "🌻", "🌹", "🍎", "🍊", "🍋", "🍇",
)
BOARD_SIZES: Tuple[int, ...] = (2, 4, 6, 8)


def pairs_for(board_size: int) -> int:
    """Number of pairs on a ``board_size`` x ``board_size`` board."""
    if board_size not in BOARD_SIZES:
        raise ValueError(
            f"Unsupported board size {board_size}. "
            f"Choose one of {', '.join(map(str, BOARD_SIZES))}."
        )
    return board_size * board_size // 2


def generate_deck(board_size: int, rng: Optional[random.Random] = None) -> List[Card]:
    """Pick distinct symbols, lay each down twice and shuffle (Fisher-Yates)."""
    rng = rng or random.Random()
    symbols = rng.sample(EMOJIS, pairs_for(board_size))
    cards = [
        Card(emoji=emoji, pair_id=pair_id)
        for pair_id, emoji in enumerate(symbols)
        for _ in range(2)
    ]
    rng.shuffle(cards)
    return cards


def deck_from_symbols(symbols: List[str]) -> List[Card]:
    """Build a deck in the given order; equal symbols share a pair id."""
    pair_ids: Dict[str, int] = {}
    cards = []
    for emoji in symbols:
        pair_id = pair_ids.setdefault(emoji, len(pair_ids))
        cards.append(Card(emoji=emoji, pair_id=pair_id))
    counts = {pair_id: 0 for pair_id in pair_ids.values()}
    for card in cards:
        counts[card.pair_id] += 1
    if any(count != 2 for count in counts.values()):
        raise ValueError("Every symbol must appear exactly twice")
    return cards
