"""CacheSimulator coordinates cache accesses over a sequence.
Feeds (address, operation) pairs into the core cache one step at a time and
keeps the hit-rate history for charts.
"""
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .cache import AccessResult, Operation, SetAssociativeCache

logger = logging.getLogger(__name__)


class CacheSimulator:
    def __init__(self, cache: SetAssociativeCache):
        self.cache = cache
        self.sequence: List[Tuple[int, Operation]] = []
        self.index = 0
        self.results: List[AccessResult] = []
        self.hit_rate_history: List[float] = []

    @property
    def stats(self):
        return self.cache.statistics()

    def reset(self):
        # rewind the sequence pointer and clear the cache (stats included)
        self.index = 0
        self.results = []
        self.hit_rate_history = []
        self.cache.clear()

    def load_sequence(self, addresses: Sequence[int], operations: Optional[Sequence[Operation]] = None):
        operations = list(operations or [])
        if len(operations) < len(addresses):
            operations += [Operation.READ] * (len(addresses) - len(operations))
        self.sequence = list(zip(addresses, operations))
        self.index = 0

    def load_accesses(self, accesses: Sequence[Tuple[int, Operation]]):
        self.sequence = list(accesses)
        self.index = 0

    def has_next(self) -> bool:
        return self.index < len(self.sequence)

    def step(self) -> Optional[dict]:
        if not self.has_next():
            return None
        address, operation = self.sequence[self.index]
        self.index += 1

        outcome = self.cache.access_detailed(address, operation)
        stats = self.cache.statistics()
        self.results.append(outcome.result)
        self.hit_rate_history.append(stats.hit_rate)

        if outcome.evicted is not None:
            logger.debug("0x%x %s -> %s (set %d, way %s, evicted 0x%x%s)", address, operation.name,
                         outcome.result.name, outcome.set_index, outcome.way, outcome.evicted_address,
                         ", dirty" if outcome.evicted.dirty else "")
        else:
            logger.debug("0x%x %s -> %s (set %d, way %s)", address, operation.name,
                         outcome.result.name, outcome.set_index, outcome.way)

        return {
            'address': address,
            'operation': operation,
            'result': outcome.result,
            'hit': outcome.hit,
            'set_index': outcome.set_index,
            'way_index': outcome.way,
            'evicted': outcome.evicted,
            'evicted_address': outcome.evicted_address,
            'mem_read': outcome.memory_read,
            'mem_write': outcome.memory_write,
            'stats': stats.as_dict(),
        }

    def run_all(self, callback: Optional[Callable[[dict], None]] = None) -> List[dict]:
        steps = []
        while self.has_next():
            info = self.step()
            steps.append(info)
            if callback:
                callback(info)
        return steps
