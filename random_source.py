"""
PediSim: Seedable Random Source
===============================
Every probabilistic decision in the kernel draws from one of these.
A session owns exactly one instance; threading it through each call
(rather than a module-level generator) is what makes a whole session
replayable from a single seed.
"""

from typing import Optional

import numpy as np


class RandomSource:
    """
    Thin wrapper over numpy's Generator.

    Attributes:
        seed: The seed last applied, or None when drawing from OS entropy.
    """

    def __init__(self, seed: Optional[int] = None):
        self._seed = seed
        self._rng = np.random.default_rng(seed)

    @property
    def seed(self) -> Optional[int]:
        return self._seed

    def set_seed(self, seed: int) -> None:
        """Restart the stream deterministically from `seed`."""
        self._seed = seed
        self._rng = np.random.default_rng(seed)

    def reset(self) -> None:
        """Back to an unseeded, entropy-backed stream (production behaviour)."""
        self._seed = None
        self._rng = np.random.default_rng()

    def uniform(self) -> float:
        """A single draw in [0, 1)."""
        return float(self._rng.random())

    def randint(self, low: int, high: int) -> int:
        """A single draw in [low, high], both inclusive."""
        return int(self._rng.integers(low, high, endpoint=True))

    def chance(self, probability: float) -> bool:
        """Bernoulli trial; consumes exactly one draw."""
        return self.uniform() < probability

    def __repr__(self) -> str:
        return f"RandomSource(seed={self._seed!r})"
