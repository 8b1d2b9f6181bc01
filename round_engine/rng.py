"""
ROUND ENGINE — Deterministic RNG

Seeded 32-bit generator (Mulberry32 mixing) that every engine draws from.
Pure integer arithmetic, so a given seed yields the same sequence in any
implementation that follows the same mixing steps.

Usage:
    from round_engine.rng import DeterministicRng

    rng = DeterministicRng(0x5EEDC0DE)
    print(rng.seed_hex)        # "5EEDC0DE" — surface this for debugging
    roll = rng.next()          # float in [0, 1)
    hit = rng.chance(0.14)
"""

from __future__ import annotations

import os
from typing import Optional, Sequence, TypeVar

from round_engine.errors import InvalidArgument

T = TypeVar("T")

MASK_32 = 0xFFFFFFFF
TWO_POW_32 = 4294967296
INCREMENT = 0x6D2B79F5


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiply."""
    return (a * b) & MASK_32


class DeterministicRng:
    """Seeded pseudo-random source. One instance per session."""

    __slots__ = ("_seed", "_state")

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = int.from_bytes(os.urandom(4), "big")
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise InvalidArgument(f"seed must be an int, got {type(seed).__name__}")
        if not 0 <= seed <= MASK_32:
            raise InvalidArgument(f"seed must fit in 32 bits unsigned, got {seed}")
        self._seed = seed
        self._state = seed

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def state(self) -> int:
        return self._state

    @property
    def seed_hex(self) -> str:
        return f"{self._seed:08X}"

    def next_u32(self) -> int:
        """Advance the state and return the mixed 32-bit output."""
        self._state = (self._state + INCREMENT) & MASK_32
        s = self._state
        t = _imul(s ^ (s >> 15), s | 1)
        t = ((t + _imul(t ^ (t >> 7), t | 61)) & MASK_32) ^ t
        return (t ^ (t >> 14)) & MASK_32

    def next(self) -> float:
        """Float in [0, 1)."""
        return self.next_u32() / TWO_POW_32

    def chance(self, p: float) -> bool:
        # Always consumes one draw, so p <= 0 and p >= 1 keep the sequence aligned.
        return self.next() < p

    def randint(self, lo: int, hi: int) -> int:
        """Integer in [lo, hi] inclusive."""
        if hi < lo:
            raise InvalidArgument(f"randint bounds inverted: lo={lo} hi={hi}")
        return int(self.next() * (hi - lo + 1)) + lo

    def pick(self, items: Sequence[T]) -> T:
        if not items:
            raise InvalidArgument("pick() needs a non-empty sequence")
        return items[int(self.next() * len(items))]

    def __repr__(self) -> str:
        return f"DeterministicRng(seed=0x{self.seed_hex})"
