"""
Seeded random number generator.

Every randomized decision of a test run draws from one RNGenerator so that a
run is fully reproducible from its seed.
"""
import random
import string
from typing import Sequence, TypeVar

T = TypeVar("T")

_STRING_ALPHABET = string.ascii_lowercase + string.digits


class RNGenerator:
    """Deterministic pseudo-random source for a single test run."""

    def __init__(self, seed: int = 0):
        self._seed = seed & 0xFFFFFFFF
        self._rng = random.Random(self._seed)

    @property
    def seed(self) -> int:
        return self._seed

    def flip_coin(self) -> bool:
        return self._rng.getrandbits(1) == 1

    def pick_uint32(self) -> int:
        return self._rng.getrandbits(32)

    def pick_int32(self, lo: int, hi: int) -> int:
        """Pick an integer from the inclusive range [lo, hi]."""
        if lo > hi:
            raise ValueError(f"empty range [{lo}, {hi}]")
        return self._rng.randint(lo, hi)

    def pick_with_prob(self, prob: float) -> bool:
        """Return True with probability `prob`."""
        return self._rng.random() < prob

    def pick(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("cannot pick from an empty sequence")
        return items[self._rng.randrange(len(items))]

    def pick_weighted(self, items: Sequence[T], weights: Sequence[int]) -> T:
        """Pick an item with probability proportional to its weight.

        Args:
            items: Candidates
            weights: Non-negative integer weight per candidate

        Returns:
            The selected item
        """
        if len(items) != len(weights):
            raise ValueError("items and weights differ in length")
        total = sum(weights)
        if total <= 0:
            raise ValueError("weights must sum to a positive value")
        r = self._rng.randrange(total)
        for item, w in zip(items, weights):
            if r < w:
                return item
            r -= w
        # Unreachable: r < total
        return items[-1]

    def pick_bin_str(self, width: int) -> str:
        return "".join("1" if self.flip_coin() else "0" for _ in range(width))

    def pick_string(self, max_len: int) -> str:
        n = self.pick_int32(0, max_len)
        return "".join(self.pick(_STRING_ALPHABET) for _ in range(n))
