"""
Deterministic RNG — Seeded random wrapper.

Every random decision of build_org goes through one DeterministicRNG.
Identical (template, seed) → identical call sequence → identical org.
"""

from __future__ import annotations

import random
from typing import List, Sequence, TypeVar

T = TypeVar("T")


class DeterministicRNG:
    """Local seeded RNG. No global random state touched."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(seed)

    def rand_int(self, low: int, high: int) -> int:
        """Return random integer in [low, high] inclusive."""
        return self._rng.randint(low, high)

    def rand_choice(self, seq: Sequence[T]) -> T:
        """Pick one element from a non-empty sequence."""
        return self._rng.choice(seq)

    def chance(self, percent: int) -> bool:
        """True with probability percent/100 (integer percent, 0..100)."""
        return self._rng.randint(1, 100) <= percent

    def shuffle(self, seq: List[T]) -> None:
        """In-place deterministic shuffle."""
        self._rng.shuffle(seq)
