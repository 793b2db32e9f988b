"""Utility for handing out random session PINs."""

from __future__ import annotations

from collections import deque
import random

from lime_quiz.constants.quiz_constants import PIN_MAX, PIN_MIN


class PinGenerator:
    """Provides randomized 4-digit PINs, avoiding repeats until the pool is exhausted."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)
        self._pool: deque[str] = deque()

    def next_pin(self) -> str:
        if not self._pool:
            self._refill_pool()
        return self._pool.popleft()

    def _refill_pool(self) -> None:
        pins = [str(value) for value in range(PIN_MIN, PIN_MAX + 1)]
        self._rng.shuffle(pins)
        self._pool.extend(pins)
