from __future__ import annotations

import random
from typing import Optional, Tuple

SENTINEL_PAIR: Tuple[int, int] = (0, 0)


def honeypot_triggered(value: Optional[str]) -> bool:
    """A hidden field a person never sees; any content means a script filled it."""
    return bool(value)


class HumanVerificationGate:
    """
    Arithmetic challenge guarding the auth forms.

    The pair starts at the (0, 0) sentinel and only receives a real value in
    `initialize()`, which runs once the form is interactive. Validity is
    recomputed whenever the input or the pair changes and is always False
    while the sentinel is showing.
    """

    def __init__(self, rng: Optional[random.Random] = None, low: int = 1, high: int = 10):
        self._rng = rng or random.Random()
        self.low = low
        self.high = high
        self._pair: Tuple[int, int] = SENTINEL_PAIR
        self._input = ""
        self._initialized = False
        self.valid = False
        self.passed = False

    @property
    def pair(self) -> Tuple[int, int]:
        return self._pair

    @property
    def is_sentinel(self) -> bool:
        return self._pair == SENTINEL_PAIR

    @property
    def input(self) -> str:
        return self._input

    @input.setter
    def input(self, value: str) -> None:
        self._input = "" if value is None else str(value)
        self._recompute()

    def _draw(self) -> Tuple[int, int]:
        return self._rng.randint(self.low, self.high), self._rng.randint(self.low, self.high)

    def _recompute(self) -> None:
        if self.is_sentinel:
            self.valid = False
            return
        try:
            answer = float(self._input.strip())
        except ValueError:
            self.valid = False
            return
        a, b = self._pair
        self.valid = answer == a + b

    def initialize(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._pair = self._draw()
        self._recompute()

    def refresh(self) -> None:
        self._initialized = True
        self._pair = self._draw()
        self._input = ""
        self.valid = False

    def confirm(self) -> bool:
        """Latches `passed` once the current answer is right."""
        if self.valid:
            self.passed = True
        return self.passed

    def prompt(self) -> str:
        a, b = self._pair
        return f"{a} + {b}"
