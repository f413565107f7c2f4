"""Client-side progress heuristic.

The broker has no notion of fractional progress, so the estimate creeps up by
a random amount per tick and stays below 100 until completion is observed.
"""

from __future__ import annotations

import random

from tryon.jobs.states import JobState

DEFAULT_STEP = 10.0
QUEUED_CAP = 90.0
ACTIVE_CAP = 95.0


class ProgressEstimator:
    """Monotonic, capped progress estimate in [0, 100]."""

    def __init__(
        self,
        *,
        step: float = DEFAULT_STEP,
        queued_cap: float = QUEUED_CAP,
        active_cap: float = ACTIVE_CAP,
        rng: random.Random | None = None,
    ):
        if step < 0:
            raise ValueError("step must be non-negative")
        self._step = step
        self._queued_cap = queued_cap
        self._active_cap = active_cap
        self._rng = rng or random.Random()
        self._value = 0.0
        self._frozen = False

    @property
    def value(self) -> float:
        return self._value

    @property
    def frozen(self) -> bool:
        return self._frozen

    def advance(self, state: JobState) -> float:
        """Add one random increment from [0, step), capped by state."""
        if self._frozen or state.is_terminal:
            return self._value
        cap = self._active_cap if state is JobState.ACTIVE else self._queued_cap
        increment = self._rng.random() * self._step
        self._value = max(self._value, min(self._value + increment, cap))
        return self._value

    def complete(self) -> float:
        self._value = 100.0
        self._frozen = True
        return self._value

    def freeze(self) -> float:
        self._frozen = True
        return self._value
