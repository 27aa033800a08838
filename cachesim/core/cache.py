"""Core cache implementation

This file provides the set-associative cache model used by the simulator
and the command-line driver.
Behavior:
- Cache is composed of `num_sets` sets; each set has `ways` blocks.
  offset = address bits [0, offset_bits)
  set_index = address bits [offset_bits, offset_bits + index_bits)
  tag = the remaining high bits
- associativity 0 means fully associative (one set holding every block),
  1 means direct mapped.
- access(address, operation) returns one of HIT, MISS, WRITE_HIT, WRITE_MISS.
  access_detailed() returns the same result plus what happened to the cache
  (way touched, evicted block, backing-store traffic).

Memory contents are not modelled: backing-store reads and writes are only
counted in the statistics.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from cachesim.core.address import AddressDecoder, is_power_of_two, log2
from cachesim.core.errors import InvalidConfiguration
from cachesim.core.replacement_policies import ReplacementPolicyType, create_policy
from cachesim.data.stats_export import CacheStatistics, StatisticsSnapshot


def _normalize(name) -> str:
    return str(name).strip().upper().replace('-', '_').replace(' ', '_')


class Operation(Enum):
    READ = "READ"
    WRITE = "WRITE"


class AccessResult(Enum):
    HIT = "HIT"
    MISS = "MISS"
    WRITE_HIT = "WRITE_HIT"
    WRITE_MISS = "WRITE_MISS"

    @property
    def is_hit(self) -> bool:
        return self in (AccessResult.HIT, AccessResult.WRITE_HIT)


class WritePolicy(Enum):
    WRITE_THROUGH = "WRITE_THROUGH"
    WRITE_BACK = "WRITE_BACK"

    @classmethod
    def from_name(cls, name) -> "WritePolicy":
        if isinstance(name, cls):
            return name
        try:
            return cls(_normalize(name))
        except ValueError:
            raise InvalidConfiguration(f"Unknown write policy: {name}") from None


class WriteMissPolicy(Enum):
    WRITE_ALLOCATE = "WRITE_ALLOCATE"
    NO_WRITE_ALLOCATE = "NO_WRITE_ALLOCATE"

    @classmethod
    def from_name(cls, name) -> "WriteMissPolicy":
        if isinstance(name, cls):
            return name
        key = _normalize(name)
        # "write-no-allocate" is the spelling used by the old UI
        if key == "WRITE_NO_ALLOCATE":
            key = "NO_WRITE_ALLOCATE"
        try:
            return cls(key)
        except ValueError:
            raise InvalidConfiguration(f"Unknown write miss policy: {name}") from None


@dataclass(frozen=True)
class CacheConfiguration:
    """Geometry and policies of one cache. Validated on construction.

    Policy fields accept either the enum member or its name; names are
    converted to the enum so the stored configuration is always typed.
    """

    cache_size: int = 1024
    block_size: int = 32
    associativity: int = 4
    replacement_policy: ReplacementPolicyType = ReplacementPolicyType.LRU
    write_policy: WritePolicy = WritePolicy.WRITE_THROUGH
    write_miss_policy: WriteMissPolicy = WriteMissPolicy.WRITE_ALLOCATE

    def __post_init__(self):
        object.__setattr__(self, 'replacement_policy', ReplacementPolicyType.from_name(self.replacement_policy))
        object.__setattr__(self, 'write_policy', WritePolicy.from_name(self.write_policy))
        object.__setattr__(self, 'write_miss_policy', WriteMissPolicy.from_name(self.write_miss_policy))

        for field_name in ('cache_size', 'block_size', 'associativity'):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfiguration(f"{field_name} must be an integer, got {value!r}")
        if self.cache_size <= 0 or self.block_size <= 0:
            raise InvalidConfiguration("Cache size and block size must be greater than 0")
        if self.cache_size % self.block_size != 0:
            raise InvalidConfiguration("Cache size must be a multiple of block size")
        if not is_power_of_two(self.block_size):
            raise InvalidConfiguration(f"Block size must be a power of two, got {self.block_size}")
        if self.associativity < 0:
            raise InvalidConfiguration("Associativity must be >= 0 (0 means fully associative)")
        if self.associativity and self.num_blocks % self.associativity != 0:
            raise InvalidConfiguration("Number of blocks must be divisible by associativity")
        if not is_power_of_two(self.num_sets):
            raise InvalidConfiguration(f"Number of sets must be a power of two, got {self.num_sets}")

    @property
    def num_blocks(self) -> int:
        return self.cache_size // self.block_size

    @property
    def ways(self) -> int:
        """Effective associativity (blocks per set)."""
        return self.associativity or self.num_blocks

    @property
    def num_sets(self) -> int:
        return self.num_blocks // self.ways

    @property
    def offset_bits(self) -> int:
        return log2(self.block_size)

    @property
    def index_bits(self) -> int:
        return log2(self.num_sets)

    @property
    def tag_bits(self) -> int:
        return 64 - self.offset_bits - self.index_bits

    @property
    def associativity_label(self) -> str:
        if self.ways == self.num_blocks and self.num_blocks > 1:
            return "Fully Associative"
        if self.ways == 1:
            return "Direct Mapped"
        return f"{self.ways}-way"

    def as_dict(self) -> Dict[str, object]:
        return {
            'cache_size': self.cache_size,
            'block_size': self.block_size,
            'associativity': self.associativity,
            'replacement_policy': self.replacement_policy.value,
            'write_policy': self.write_policy.value,
            'write_miss_policy': self.write_miss_policy.value,
            'num_sets': self.num_sets,
            'num_blocks': self.num_blocks,
        }

    def describe(self) -> str:
        write = "Write-Back" if self.write_policy is WritePolicy.WRITE_BACK else "Write-Through"
        miss = ("Write-Allocate" if self.write_miss_policy is WriteMissPolicy.WRITE_ALLOCATE
                else "No-Write-Allocate")
        lines = [
            "Cache Configuration:",
            f"  Cache Size: {self.cache_size} bytes",
            f"  Block Size: {self.block_size} bytes",
            f"  Associativity: {self.associativity_label}",
            f"  Number of Sets: {self.num_sets}",
            f"  Number of Blocks: {self.num_blocks}",
            f"  Offset Bits: {self.offset_bits}",
            f"  Index Bits: {self.index_bits}",
            f"  Tag Bits: {self.tag_bits}",
            f"  Replacement Policy: {self.replacement_policy.value}",
            f"  Write Policy: {write}",
            f"  Write Miss Policy: {miss}",
        ]
        return "\n".join(lines) + "\n"


@dataclass
class CacheBlock:
    """container for a cache line (way).

    Fields:
    - valid: whether the line currently holds a block
    - dirty: whether the line was written since it was loaded (write-back)
    - tag: the tag stored in the line
    """

    valid: bool = False
    dirty: bool = False
    tag: int = 0

    def copy(self) -> "CacheBlock":
        return CacheBlock(valid=self.valid, dirty=self.dirty, tag=self.tag)

    def invalidate(self) -> None:
        self.valid = False
        self.dirty = False
        self.tag = 0


@dataclass
class AccessOutcome:
    """Everything one access did to the cache.

    - way: the way that was hit or filled, None when a write miss bypassed
      the cache (no-write-allocate)
    - evicted: copy of the block that was replaced, if any
    - evicted_address: base address of the evicted block
    - memory_read / memory_write: backing-store traffic caused by the access
    """

    result: AccessResult
    address: int
    tag: int
    set_index: int
    way: Optional[int] = None
    evicted: Optional[CacheBlock] = None
    evicted_address: Optional[int] = None
    memory_read: bool = False
    memory_write: bool = False

    @property
    def hit(self) -> bool:
        return self.result.is_hit


class SetAssociativeCache:
    """Set-associative cache with pluggable replacement and write policies.

    All public operations run under one lock, so a cache shared between
    threads never shows half of an access.
    """

    def __init__(self, configuration: CacheConfiguration, seed: Optional[int] = None):
        self.configuration = configuration
        self.decoder = AddressDecoder(configuration.block_size, configuration.num_sets)
        self.policy = create_policy(configuration.replacement_policy, configuration.num_sets,
                                    configuration.ways, seed=seed)
        self._stats = CacheStatistics()
        self._lock = threading.Lock()
        # num_sets x ways
        self.sets: List[List[CacheBlock]] = [
            [CacheBlock() for _ in range(configuration.ways)]
            for _ in range(configuration.num_sets)
        ]

    @property
    def num_sets(self) -> int:
        return self.configuration.num_sets

    @property
    def ways(self) -> int:
        return self.configuration.ways

    @property
    def num_blocks(self) -> int:
        return self.configuration.num_blocks

    def access(self, address: int, operation: Operation = Operation.READ) -> AccessResult:
        return self.access_detailed(address, operation).result

    def access_detailed(self, address: int, operation: Operation = Operation.READ) -> AccessOutcome:
        """Perform a cache access and report what it did."""
        if not isinstance(operation, Operation):
            raise TypeError(f"operation must be an Operation, got {operation!r}")
        with self._lock:
            tag, set_index, _ = self.decoder.decode(address)
            outcome = AccessOutcome(result=AccessResult.MISS, address=address, tag=tag, set_index=set_index)

            if operation is Operation.WRITE:
                self._stats.record_write()
            else:
                self._stats.record_read()

            way = self._find_block(set_index, tag)
            if way is not None:
                self._handle_hit(outcome, way, operation)
            else:
                self._handle_miss(outcome, operation)
            return outcome

    def _find_block(self, set_index: int, tag: int) -> Optional[int]:
        for way, block in enumerate(self.sets[set_index]):
            if block.valid and block.tag == tag:
                return way
        return None

    def _find_empty_block(self, set_index: int) -> Optional[int]:
        for way, block in enumerate(self.sets[set_index]):
            if not block.valid:
                return way
        return None

    def _handle_hit(self, outcome: AccessOutcome, way: int, operation: Operation) -> None:
        set_index = outcome.set_index
        outcome.way = way
        self.policy.on_access(set_index, way, True)

        if operation is Operation.READ:
            self._stats.record_hit()
            outcome.result = AccessResult.HIT
            return

        self._stats.record_write_hit()
        outcome.result = AccessResult.WRITE_HIT
        block = self.sets[set_index][way]
        if self.configuration.write_policy is WritePolicy.WRITE_BACK:
            block.dirty = True
        else:
            self._write_to_memory(self.decoder.block_address(block.tag, set_index))
            outcome.memory_write = True

    def _handle_miss(self, outcome: AccessOutcome, operation: Operation) -> None:
        if operation is Operation.READ:
            self._stats.record_miss()
            outcome.result = AccessResult.MISS
            # read misses always allocate
            self.allocate(outcome.set_index, outcome.tag, operation, outcome)
            return

        self._stats.record_write_miss()
        outcome.result = AccessResult.WRITE_MISS
        if self.configuration.write_miss_policy is WriteMissPolicy.WRITE_ALLOCATE:
            self.allocate(outcome.set_index, outcome.tag, operation, outcome)
            if self.configuration.write_policy is WritePolicy.WRITE_THROUGH:
                self._write_to_memory(self.decoder.block_address(outcome.tag, outcome.set_index))
                outcome.memory_write = True
        else:
            self._write_to_memory(outcome.address)
            outcome.memory_write = True

    def allocate(self, set_index: int, tag: int, operation: Operation,
                 outcome: Optional[AccessOutcome] = None) -> int:
        """Load block `tag` into `set_index`, evicting if the set is full.

        Returns the way that now holds the block.
        """
        cache_set = self.sets[set_index]
        way = self._find_empty_block(set_index)
        if way is None:
            way = self.policy.select_victim(set_index, [b.valid for b in cache_set])
            victim = cache_set[way]
            victim_address = self.decoder.block_address(victim.tag, set_index)
            if victim.dirty:
                self._write_to_memory(victim_address)
                if outcome is not None:
                    outcome.memory_write = True
            if outcome is not None:
                outcome.evicted = victim.copy()
                outcome.evicted_address = victim_address

        block = cache_set[way]
        block.valid = True
        block.tag = tag
        block.dirty = (operation is Operation.WRITE
                       and self.configuration.write_policy is WritePolicy.WRITE_BACK)
        self._read_from_memory(self.decoder.block_address(tag, set_index))
        self.policy.on_access(set_index, way, False)

        if outcome is not None:
            outcome.way = way
            outcome.memory_read = True
        return way

    # backing store is not modelled; only the traffic is counted
    def _read_from_memory(self, address: int) -> None:
        self._stats.record_memory_read()

    def _write_to_memory(self, address: int) -> None:
        self._stats.record_memory_write()

    def statistics(self) -> StatisticsSnapshot:
        with self._lock:
            return self._stats.snapshot()

    def reset_statistics(self) -> None:
        with self._lock:
            self._stats.reset()

    def clear(self) -> None:
        """Invalidate every block and reset policy state and statistics."""
        with self._lock:
            for cache_set in self.sets:
                for block in cache_set:
                    block.invalidate()
            self.policy.reset()
            self._stats.reset()

    def _block(self, set_index: int, way: int) -> CacheBlock:
        if not (0 <= set_index < self.num_sets and 0 <= way < self.ways):
            raise IndexError(f"no block at set {set_index}, way {way}")
        return self.sets[set_index][way]

    def is_valid(self, set_index: int, way: int) -> bool:
        return self._block(set_index, way).valid

    def is_dirty(self, set_index: int, way: int) -> bool:
        return self._block(set_index, way).dirty

    def tag_of(self, set_index: int, way: int) -> int:
        return self._block(set_index, way).tag

    def find_way(self, address: int) -> Optional[int]:
        """Way currently holding `address`, or None. Does not touch policy state."""
        tag, set_index, _ = self.decoder.decode(address)
        return self._find_block(set_index, tag)

    def valid_block_count(self) -> int:
        return sum(1 for cache_set in self.sets for block in cache_set if block.valid)

    def contents(self) -> List[List[Dict[str, object]]]:
        """Per set, per way: {'valid', 'dirty', 'tag'} (copies, for display)."""
        with self._lock:
            return [
                [{'valid': b.valid, 'dirty': b.dirty, 'tag': b.tag} for b in cache_set]
                for cache_set in self.sets
            ]

    def describe(self) -> str:
        return self.configuration.describe()

    def format_contents(self) -> str:
        lines = ["Cache Contents:", "================"]
        for set_index, cache_set in enumerate(self.contents()):
            cells = []
            for entry in cache_set:
                if entry['valid']:
                    cells.append(f"[V:1 D:{int(entry['dirty'])} Tag:0x{entry['tag']:x}]")
                else:
                    cells.append("[Invalid]")
            lines.append(f"Set {set_index}: " + " ".join(cells))
        lines.append("================")
        return "\n".join(lines) + "\n"


def build_cache(
    cache_size: int,
    block_size: int,
    associativity: int,
    policy_name="LRU",
    write_policy="WRITE_THROUGH",
    write_miss_policy="WRITE_ALLOCATE",
    seed: Optional[int] = None,
) -> SetAssociativeCache:
    """Validate the parameters and build a cache.

    Raises InvalidConfiguration when the parameters do not describe a cache.
    """
    configuration = CacheConfiguration(
        cache_size=cache_size,
        block_size=block_size,
        associativity=associativity,
        replacement_policy=policy_name,
        write_policy=write_policy,
        write_miss_policy=write_miss_policy,
    )
    return SetAssociativeCache(configuration, seed=seed)
