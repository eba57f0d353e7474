"""Timing jitter used to make automated interaction look human.

Every randomized delay or coordinate in the browser layer is drawn from a
``Jitter`` instance rather than calling ``random`` directly. Ranges used
by the call sites (milliseconds, half-open ``[low, high)``):

============================  ===============
Call site                     Range
============================  ===============
reaction pause before action  500 - 1500
click press duration          100 - 300
inter-keystroke delay         50 - 200
typing hesitation pause       500 - 1500 (p=0.1 per character)
post-behavior pause           1000 - 3000
============================  ===============
"""

from __future__ import annotations

import random
from collections.abc import Iterable, Iterator

# Named ranges, in milliseconds.
REACTION_DELAY_MS = (500.0, 1500.0)
CLICK_PRESS_MS = (100.0, 300.0)
KEYSTROKE_DELAY_MS = (50.0, 200.0)
HESITATION_DELAY_MS = (500.0, 1500.0)
HESITATION_PROBABILITY = 0.1
BEHAVIOR_PAUSE_MS = (1000.0, 3000.0)


class Jitter:
    """Random source for delays, coordinates and coin flips.

    Args:
        rng: Optional ``random.Random``; pass a seeded one for reproducibility.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def fraction(self) -> float:
        """Return a float in ``[0, 1)``."""
        return self._rng.random()

    def uniform(self, low: float, high: float) -> float:
        """Return a float in ``[low, high)``."""
        return low + (high - low) * self.fraction()

    def delay_ms(self, bounds: tuple[float, float]) -> float:
        return self.uniform(*bounds)

    def chance(self, probability: float) -> bool:
        """Return True with the given probability."""
        return self.fraction() < probability


class FixedJitter(Jitter):
    """Deterministic jitter that replays a sequence of fractions.

    Each draw consumes the next value in ``[0, 1)``; the sequence cycles when
    exhausted. Useful in tests: ``FixedJitter([0.0])`` always picks the low
    end of every range and fires every ``chance`` with positive probability.

    Args:
        fractions: Values to replay, each in ``[0, 1)``.
    """

    def __init__(self, fractions: Iterable[float] = (0.5,)) -> None:
        values = list(fractions)
        if not values:
            raise ValueError("FixedJitter needs at least one value")
        for v in values:
            if not 0.0 <= v < 1.0:
                raise ValueError(f"Jitter fraction out of range: {v}")
        super().__init__()
        self._values = values
        self._iter: Iterator[float] = self._cycle()

    def _cycle(self) -> Iterator[float]:
        while True:
            yield from self._values

    def fraction(self) -> float:
        return next(self._iter)
