"""Scripted opponent with a leaky memory of the cards it has seen."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence


@dataclass(frozen=True)
class DifficultyProfile:
    """How well the opponent remembers and how often it ignores what it knows.

    - memory_rate: chance that an observed card is retained
    - thinking_time: base delay in seconds before each flip
    - mistake_rate: chance of ignoring a known card and guessing instead
    """

    memory_rate: float
    thinking_time: float
    mistake_rate: float


DIFFICULTIES: Dict[str, DifficultyProfile] = {
    "easy": DifficultyProfile(memory_rate=0.3, thinking_time=2.0, mistake_rate=0.3),
    "medium": DifficultyProfile(memory_rate=0.6, thinking_time=1.0, mistake_rate=0.15),
    "hard": DifficultyProfile(memory_rate=0.9, thinking_time=0.5, mistake_rate=0.05),
}


@dataclass
class ScriptedOpponent:
    """Stand-in for the guest in single-player games.

    Public surface:
      - observe(index, emoji) on every flip, whoever made it
      - forget(index) once the card's pair is resolved
      - choose_first_card(available) / choose_second_card(first, available)
    """

    profile: DifficultyProfile
    rng: random.Random = field(default_factory=random.Random, repr=False)
    _memory: Dict[int, str] = field(default_factory=dict, repr=False)
    _known: Dict[str, List[int]] = field(default_factory=dict, repr=False)

    @classmethod
    def for_difficulty(cls, difficulty: str, rng: Optional[random.Random] = None) -> "ScriptedOpponent":
        try:
            profile = DIFFICULTIES[difficulty]
        except KeyError as exc:
            raise ValueError(
                f"Unsupported difficulty {difficulty!r}. "
                f"Choose one of {', '.join(DIFFICULTIES)}."
            ) from exc
        return cls(profile=profile, rng=rng or random.Random())

    def reset(self) -> None:
        self._memory.clear()
        self._known.clear()

    def remembers(self, index: int) -> Optional[str]:
        return self._memory.get(index)

    # ---- memory ----

    def observe(self, index: int, emoji: str) -> None:
        if self.rng.random() >= self.profile.memory_rate:
            return
        self._memory[index] = emoji
        indices = self._known.setdefault(emoji, [])
        if index not in indices:
            indices.append(index)

    def forget(self, index: int) -> None:
        emoji = self._memory.pop(index, None)
        if emoji is None or emoji not in self._known:
            return
        remaining = [i for i in self._known[emoji] if i != index]
        if remaining:
            self._known[emoji] = remaining
        else:
            del self._known[emoji]

    # ---- choices ----

    def think_delay(self) -> float:
        return self.profile.thinking_time * (0.5 + self.rng.random() * 0.5)

    def choose_first_card(self, available: Sequence[int]) -> int:
        if not available:
            raise ValueError("No cards left to flip")
        open_cards = set(available)
        for indices in self._known.values():
            candidates = [i for i in indices if i in open_cards]
            if len(candidates) >= 2 and not self._slips():
                return candidates[0]
        return self.rng.choice(list(available))

    def choose_second_card(
        self, first_index: int, available: Sequence[int], first_emoji: Optional[str] = None
    ) -> int:
        choices = [i for i in available if i != first_index]
        if not choices:
            raise ValueError("No second card left to flip")
        emoji = first_emoji if first_emoji is not None else self._memory.get(first_index)
        if emoji is not None:
            for index in self._known.get(emoji, []):
                if index in choices and not self._slips():
                    return index
        return self.rng.choice(choices)

    def _slips(self) -> bool:
        return self.rng.random() < self.profile.mistake_rate
