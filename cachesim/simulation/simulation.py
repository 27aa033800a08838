"""Simulation runner used by the command-line driver.

Turns the run settings into a sequence of accesses (trace file, explicit
address list or a built-in scenario) and feeds it through a CacheSimulator.
The cache is built once and reused by later runs, so replacement state,
dirty bits and statistics accumulate across passes and runs.
"""
import random
from typing import List, Optional, Tuple

from cachesim.core.cache import Operation, SetAssociativeCache
from cachesim.core.simulator import CacheSimulator
from cachesim.data.trace import load_trace, parse_access_list

SCENARIOS = ('Default', 'Sequential', 'Matrix Traversal', 'Random Access', 'Instruction Data Mix')

# element size used by the array-style scenarios (32-bit words)
WORD = 4


def generate_sequence(name: str, seed: Optional[int] = None, block_size: int = 32) -> List[Tuple[int, Operation]]:
    """Produce the (address, operation) list for a built-in scenario."""
    R, W = Operation.READ, Operation.WRITE
    if name == 'Default':
        addresses = [0x0, 0x20, 0x40, 0x60, 0x80, 0x100, 0x0, 0x0]
        return [(a, R if i % 2 == 0 else W) for i, a in enumerate(addresses)]
    elif name == 'Matrix Traversal':
        # row-major walk over a 10x10 matrix of words
        N = 10
        return [((i * N + j) * WORD, R) for i in range(N) for j in range(N)]
    elif name == 'Sequential':
        # two passes over 32 consecutive blocks, one access per block
        return [(i * block_size, R) for i in range(32)] * 2
    elif name == 'Random Access':
        rng = random.Random(seed)
        return [(rng.randint(0, 255) * WORD, R) for _ in range(16)]
    elif name == 'Instruction Data Mix':
        # instruction fetches from 0.. interleaved with loads from a small data table
        seq = []
        for i in range(32):
            seq.append((i * WORD, R))
            seq.append(((100 + (i % 8)) * WORD, R))
        return seq
    raise ValueError(f"Unknown scenario {name!r}; choose one of {', '.join(SCENARIOS)}")


class Simulation:
    def __init__(self, settings):
        self.settings = settings
        self.cache: Optional[SetAssociativeCache] = None
        self.simulator: Optional[CacheSimulator] = None

    def _create_cache(self):
        # Only create the cache if one does not already exist.
        if self.simulator is not None:
            return
        self.cache = SetAssociativeCache(self.settings.to_cache_configuration(), seed=self.settings.seed)
        self.simulator = CacheSimulator(self.cache)

    def accesses(self) -> List[Tuple[int, Operation]]:
        s = self.settings
        if s.trace_file:
            return load_trace(s.trace_file)
        if s.addresses:
            return parse_access_list(s.addresses, s.operations)
        return generate_sequence(s.scenario, seed=s.seed, block_size=s.block_size)

    def run_simulation(self, num_passes: Optional[int] = None) -> List[dict]:
        self._create_cache()
        if num_passes is None:
            num_passes = self.settings.num_passes
        items = self.accesses()
        results = []
        for p in range(num_passes):
            self.simulator.load_accesses(items)
            for idx, info in enumerate(self.simulator.run_all()):
                info['_pass'] = p
                info['_idx'] = idx
                results.append(info)
        return results
