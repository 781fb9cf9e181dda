"""
Injectable random number sources.

Simulations never reach for a global generator; they draw uniforms from a
RandomSource handed in by the caller so that runs are reproducible and
parallel batches get non-overlapping streams.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Union

import numpy as np


class RandomSource(ABC):
    """Source of uniform floats in [0, 1)."""

    @abstractmethod
    def next(self) -> float:
        """Return the next uniform draw in [0, 1)."""
        raise NotImplementedError

    def uniforms(self, size: int) -> np.ndarray:
        """Return ``size`` uniform draws as an array."""
        return np.fromiter((self.next() for _ in range(size)), dtype=float, count=size)

    @property
    def can_spawn(self) -> bool:
        return False

    def spawn(self, n: int) -> List["RandomSource"]:
        """Return ``n`` statistically independent child sources."""
        raise NotImplementedError(f"{type(self).__name__} cannot spawn independent streams")


class NumpyRandomSource(RandomSource):
    """RandomSource backed by numpy's PCG64 generator and SeedSequence spawning."""

    def __init__(self, seed: Optional[Union[int, np.random.SeedSequence]] = None):
        if isinstance(seed, np.random.SeedSequence):
            self._seed_sequence = seed
        else:
            self._seed_sequence = np.random.SeedSequence(seed)
        self._generator = np.random.default_rng(self._seed_sequence)

    @property
    def seed_sequence(self) -> np.random.SeedSequence:
        return self._seed_sequence

    def next(self) -> float:
        return float(self._generator.random())

    def uniforms(self, size: int) -> np.ndarray:
        return self._generator.random(size)

    @property
    def can_spawn(self) -> bool:
        return True

    def spawn(self, n: int) -> List["NumpyRandomSource"]:
        return [NumpyRandomSource(child) for child in self._seed_sequence.spawn(n)]
