"""Replacement policies for the set-associative cache.

Three policies share one small API so the cache can call them
interchangeably:

- LRUReplacement(num_sets, ways)
- FIFOReplacement(num_sets, ways)
- RandomReplacement(num_sets, ways, rng=None)

API (methods):
- select_victim(set_index, valid_mask): return the way to evict; only ways
  flagged valid in the mask are candidates
- on_access(set_index, way, was_hit): notify the policy that `way` was hit
  (was_hit=True) or just filled (was_hit=False)
- reset(): forget all recency / insertion state

Policies never see the cache blocks themselves. LRU and FIFO keep their own
timestamp table addressed by (set, way) and one counter per policy object,
so two caches never share a clock.
"""

import random
from enum import Enum
from typing import List, Optional, Sequence

from cachesim.core.errors import InvalidConfiguration


class ReplacementPolicyType(Enum):
    LRU = "LRU"
    FIFO = "FIFO"
    RANDOM = "RANDOM"

    @classmethod
    def from_name(cls, name) -> "ReplacementPolicyType":
        """Parse a policy name such as 'lru', 'FIFO' or 'Random'."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().upper())
        except ValueError:
            raise InvalidConfiguration(f"Unknown replacement policy: {name}") from None


class _TimestampPolicy:
    """Shared bookkeeping for LRU and FIFO: one stamp per (set, way)."""

    name = ""

    def __init__(self, num_sets: int, ways: int):
        self.num_sets = int(num_sets)
        self.ways = int(ways)
        self._clock = 0
        self._stamps: List[List[int]] = [[0] * self.ways for _ in range(self.num_sets)]

    def _stamp(self, set_index: int, way: int) -> None:
        self._clock += 1
        self._stamps[set_index][way] = self._clock

    def select_victim(self, set_index: int, valid_mask: Sequence[bool]) -> int:
        # strict '<' keeps the lowest way index on ties
        stamps = self._stamps[set_index]
        victim = None
        for way, valid in enumerate(valid_mask):
            if valid and (victim is None or stamps[way] < stamps[victim]):
                victim = way
        if victim is None:
            raise ValueError(f"set {set_index} has no valid block to evict")
        return victim

    def stamps(self, set_index: int) -> List[int]:
        """Return a copy of the stamps for one set (for UI/debug)."""
        return list(self._stamps[set_index])

    def reset(self) -> None:
        self._clock = 0
        for row in self._stamps:
            for way in range(len(row)):
                row[way] = 0


class LRUReplacement(_TimestampPolicy):
    """Least-Recently-Used: every hit and every fill refreshes the stamp."""

    name = "LRU"

    def on_access(self, set_index: int, way: int, was_hit: bool) -> None:
        self._stamp(set_index, way)


class FIFOReplacement(_TimestampPolicy):
    """First-In-First-Out: only fills are stamped, hits leave the order alone."""

    name = "FIFO"

    def on_access(self, set_index: int, way: int, was_hit: bool) -> None:
        if not was_hit:
            self._stamp(set_index, way)


class RandomReplacement:
    """Random replacement picks a uniformly random valid way."""

    name = "Random"

    def __init__(self, num_sets: int, ways: int, rng: Optional[random.Random] = None):
        self.num_sets = int(num_sets)
        self.ways = int(ways)
        self._rng = rng or random.Random()

    def select_victim(self, set_index: int, valid_mask: Sequence[bool]) -> int:
        candidates = [way for way, valid in enumerate(valid_mask) if valid]
        if not candidates:
            raise ValueError(f"set {set_index} has no valid block to evict")
        return self._rng.choice(candidates)

    def on_access(self, set_index: int, way: int, was_hit: bool) -> None:
        pass

    def reset(self) -> None:
        pass


def create_policy(kind, num_sets: int, ways: int, seed: Optional[int] = None):
    """Build the policy object for `kind` (enum member or name)."""
    kind = ReplacementPolicyType.from_name(kind)
    if kind is ReplacementPolicyType.LRU:
        return LRUReplacement(num_sets, ways)
    if kind is ReplacementPolicyType.FIFO:
        return FIFOReplacement(num_sets, ways)
    return RandomReplacement(num_sets, ways, rng=random.Random(seed))


__all__ = [
    "ReplacementPolicyType",
    "LRUReplacement",
    "FIFOReplacement",
    "RandomReplacement",
    "create_policy",
]
