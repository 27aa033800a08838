"""Unit tests for core cache behaviors.

These tests focus on the cache core (no CLI). They cover:

- configuration validation and derived geometry
- hit/miss classification for direct-mapped, set-associative and fully
  associative caches
- write policies (write-back vs write-through)
- write-miss policies (write-allocate vs no-write-allocate)
- eviction of dirty blocks and backing-store traffic accounting
- clear(), statistics snapshots and introspection accessors
"""

import random
import threading

import pytest
from cachesim.core.cache import (
    AccessResult,
    CacheConfiguration,
    Operation,
    SetAssociativeCache,
    WriteMissPolicy,
    WritePolicy,
    build_cache,
)
from cachesim.core.errors import InvalidConfiguration
from cachesim.core.replacement_policies import ReplacementPolicyType

R, W = Operation.READ, Operation.WRITE
HIT, MISS = AccessResult.HIT, AccessResult.MISS
WRITE_HIT, WRITE_MISS = AccessResult.WRITE_HIT, AccessResult.WRITE_MISS


def _run(cache, addresses, op=R):
    return [cache.access(a, op) for a in addresses]


def test_default_configuration_geometry():
    cfg = CacheConfiguration()
    assert cfg.num_blocks == 32
    assert cfg.ways == 4
    assert cfg.num_sets == 8
    assert cfg.offset_bits == 5
    assert cfg.index_bits == 3
    assert cfg.tag_bits == 56
    assert cfg.replacement_policy is ReplacementPolicyType.LRU
    assert cfg.write_policy is WritePolicy.WRITE_THROUGH
    assert cfg.write_miss_policy is WriteMissPolicy.WRITE_ALLOCATE


def test_fully_associative_uses_one_set():
    cfg = CacheConfiguration(cache_size=512, block_size=32, associativity=0)
    assert cfg.num_sets == 1
    assert cfg.ways == 16
    assert cfg.index_bits == 0
    assert cfg.associativity_label == "Fully Associative"


def test_policy_names_are_parsed():
    cfg = CacheConfiguration(replacement_policy='fifo', write_policy='write-back',
                             write_miss_policy='write-no-allocate')
    assert cfg.replacement_policy is ReplacementPolicyType.FIFO
    assert cfg.write_policy is WritePolicy.WRITE_BACK
    assert cfg.write_miss_policy is WriteMissPolicy.NO_WRITE_ALLOCATE


@pytest.mark.parametrize('kwargs', [
    dict(cache_size=0, block_size=32),
    dict(cache_size=1024, block_size=0),
    dict(cache_size=1000, block_size=32),          # not a multiple
    dict(cache_size=96, block_size=24, associativity=1),  # block size not a power of two
    dict(cache_size=96, block_size=32, associativity=1),  # 3 sets
    dict(cache_size=1024, block_size=32, associativity=3),  # 32 blocks not divisible by 3
    dict(cache_size=1024, block_size=32, associativity=64),
    dict(cache_size=1024, block_size=32, associativity=-1),
    dict(cache_size=1024.0, block_size=32),
    dict(replacement_policy='MRU'),
    dict(write_policy='write-around'),
    dict(write_miss_policy='sometimes'),
])
def test_invalid_configurations_are_rejected(kwargs):
    with pytest.raises(InvalidConfiguration):
        CacheConfiguration(**kwargs)


def test_invalid_configuration_is_a_value_error():
    with pytest.raises(ValueError):
        build_cache(1024, 32, 4, policy_name='LFU')


def test_direct_mapped_aliasing():
    # 0x0 and 0x200 share set 0 with different tags: each access evicts the other
    c = build_cache(512, 32, 1, 'LRU')
    assert c.num_sets == 16
    assert _run(c, [0x0, 0x200, 0x0, 0x200]) == [MISS, MISS, MISS, MISS]


def test_fully_associative_no_conflict():
    c = build_cache(512, 32, 0, 'LRU')
    assert _run(c, [0x0, 0x200, 0x400, 0x600, 0x0, 0x200]) == [MISS, MISS, MISS, MISS, HIT, HIT]
    assert c.valid_block_count() == 4


def test_two_way_set_associative_sequence():
    # 256B / 32B = 8 blocks, 4 sets; 0x0, 0x100, 0x200 all map to set 0
    c = build_cache(256, 32, 2, 'LRU')
    assert _run(c, [0x0, 0x100, 0x200, 0x0, 0x100]) == [MISS, MISS, MISS, MISS, MISS]


def test_same_block_different_offsets_hit():
    c = build_cache(1024, 32, 4)
    assert c.access(0x40) is MISS
    assert c.access(0x5f) is HIT
    assert c.access(0x60) is MISS


@pytest.mark.parametrize('write_policy', ['WRITE_THROUGH', 'WRITE_BACK'])
def test_write_hit_behavior(write_policy):
    """Read miss allocates, the write hits, the following read hits.

    - write-back: the block becomes dirty, no memory write on the hit
    - write-through: the block stays clean, the write goes to memory
    """
    c = build_cache(1024, 32, 4, write_policy=write_policy)
    assert c.access(0x0, R) is MISS
    outcome = c.access_detailed(0x0, W)
    assert outcome.result is WRITE_HIT
    assert c.access(0x0, R) is HIT

    set_index, way = outcome.set_index, outcome.way
    stats = c.statistics()
    assert stats.hits == 2
    assert stats.misses == 1
    assert stats.write_hits == 1
    if write_policy == 'WRITE_BACK':
        assert c.is_dirty(set_index, way) is True
        assert outcome.memory_write is False
        assert stats.memory_writes == 0
    else:
        assert c.is_dirty(set_index, way) is False
        assert outcome.memory_write is True
        assert stats.memory_writes == 1


def test_write_allocate_miss_allocates():
    c = build_cache(1024, 32, 4, write_policy='WRITE_BACK', write_miss_policy='WRITE_ALLOCATE')
    outcome = c.access_detailed(0x80, W)
    assert outcome.result is WRITE_MISS
    assert outcome.way is not None
    assert outcome.memory_read is True
    assert c.is_valid(outcome.set_index, outcome.way)
    assert c.is_dirty(outcome.set_index, outcome.way)
    assert c.access(0x80, R) is HIT


def test_write_allocate_with_write_through_stays_clean():
    c = build_cache(1024, 32, 4, write_policy='WRITE_THROUGH', write_miss_policy='WRITE_ALLOCATE')
    outcome = c.access_detailed(0x80, W)
    assert outcome.result is WRITE_MISS
    assert c.is_dirty(outcome.set_index, outcome.way) is False
    assert outcome.memory_write is True


@pytest.mark.parametrize('write_policy', ['WRITE_THROUGH', 'WRITE_BACK'])
def test_no_write_allocate_bypasses_cache(write_policy):
    c = build_cache(1024, 32, 4, write_policy=write_policy, write_miss_policy='NO_WRITE_ALLOCATE')
    outcome = c.access_detailed(0x7, W)
    assert outcome.result is WRITE_MISS
    assert outcome.way is None
    assert outcome.memory_read is False
    assert outcome.memory_write is True
    assert c.valid_block_count() == 0
    # the block is still not cached
    assert c.access(0x7, R) is MISS


def test_read_miss_allocates_regardless_of_write_miss_policy():
    c = build_cache(1024, 32, 4, write_miss_policy='NO_WRITE_ALLOCATE')
    assert c.access(0x0, R) is MISS
    assert c.access(0x0, R) is HIT
    # once cached, a write hits even under no-write-allocate
    assert c.access(0x0, W) is WRITE_HIT


def test_evicting_dirty_block_writes_back():
    # direct mapped, 2 blocks: 0x0 and 0x40 alias in set 0
    c = build_cache(64, 32, 1, write_policy='WRITE_BACK')
    assert c.access(0x0, W) is WRITE_MISS
    outcome = c.access_detailed(0x40, R)
    assert outcome.result is MISS
    assert outcome.evicted is not None
    assert outcome.evicted.dirty is True
    assert outcome.evicted.tag == 0
    assert outcome.evicted_address == 0x0
    assert outcome.memory_write is True
    # the new block was loaded clean
    assert c.is_dirty(0, 0) is False
    assert c.tag_of(0, 0) == 1
    assert c.statistics().memory_writes == 1


def test_evicting_clean_block_has_no_write_back():
    c = build_cache(64, 32, 1, write_policy='WRITE_BACK')
    c.access(0x0, R)
    outcome = c.access_detailed(0x40, R)
    assert outcome.evicted is not None
    assert outcome.evicted.dirty is False
    assert outcome.memory_write is False
    assert c.statistics().memory_writes == 0


def test_evicted_address_rebuilds_block_base():
    c = build_cache(128, 16, 2, write_policy='WRITE_BACK')
    c.access(0x84, W)   # set 0, tag 2
    c.access(0x0, R)    # set 0, tag 0
    outcome = c.access_detailed(0xC0, R)  # set 0, tag 3 -> evicts 0x80 (LRU)
    assert outcome.evicted.tag == 2
    assert outcome.evicted_address == 0x80


def test_statistics_snapshot_is_a_copy():
    c = build_cache(1024, 32, 4)
    c.access(0x0)
    snap = c.statistics()
    c.access(0x0)
    assert snap.hits == 0
    assert c.statistics().hits == 1
    with pytest.raises(AttributeError):
        snap.hits = 10


def test_statistics_rates():
    c = build_cache(1024, 32, 4, write_policy='WRITE_BACK')
    for addr, op in [(0x0, R), (0x0, R), (0x0, W), (0x100, W)]:
        c.access(addr, op)
    s = c.statistics()
    assert (s.hits, s.misses, s.reads, s.writes) == (2, 2, 2, 2)
    assert (s.write_hits, s.write_misses) == (1, 1)
    assert s.hit_rate == pytest.approx(50.0)
    assert s.miss_rate == pytest.approx(50.0)
    assert s.read_hit_rate == pytest.approx(50.0)
    assert s.write_hit_rate == pytest.approx(50.0)


def test_clear_resets_everything_and_is_idempotent():
    c = build_cache(128, 16, 2, 'LRU', write_policy='WRITE_BACK')
    for a in (0x0, 0x10, 0x80, 0x90):
        c.access(a, W)
    assert c.valid_block_count() == 4
    c.clear()
    once = (c.contents(), c.statistics())
    c.clear()
    assert (c.contents(), c.statistics()) == once
    assert c.valid_block_count() == 0
    stats = c.statistics()
    assert stats.total_accesses == 0
    assert stats.reads == stats.writes == 0
    for cache_set in c.contents():
        for entry in cache_set:
            assert entry == {'valid': False, 'dirty': False, 'tag': 0}


def test_clear_then_replay_gives_same_results():
    seq = [0x0, 0x10, 0x80, 0x0, 0x10, 0x90, 0xC0, 0x80, 0x0]
    c = build_cache(128, 16, 2, 'LRU')
    first = _run(c, seq)
    c.clear()
    assert _run(c, seq) == first


def test_reset_statistics_keeps_contents():
    c = build_cache(1024, 32, 4)
    c.access(0x0)
    c.reset_statistics()
    assert c.statistics().total_accesses == 0
    assert c.access(0x0) is HIT


def test_contents_and_accessors():
    c = build_cache(128, 16, 2, write_policy='WRITE_BACK')
    c.access(0x90, W)  # set 1, tag 2
    contents = c.contents()
    assert len(contents) == 4
    assert all(len(s) == 2 for s in contents)
    assert contents[1][0] == {'valid': True, 'dirty': True, 'tag': 2}
    assert c.is_valid(1, 0) and c.is_dirty(1, 0) and c.tag_of(1, 0) == 2
    assert c.is_valid(1, 1) is False
    assert c.find_way(0x9f) == 0
    assert c.find_way(0x10) is None
    with pytest.raises(IndexError):
        c.is_valid(4, 0)
    # contents() is a copy
    contents[1][0]['valid'] = False
    assert c.is_valid(1, 0) is True


@pytest.mark.parametrize('operation', ["WRITE", "R", 1, None])
def test_operation_must_be_the_enum(operation):
    c = build_cache(1024, 32, 4)
    with pytest.raises(TypeError):
        c.access(0x0, operation)
    # rejected before anything is counted or cached
    s = c.statistics()
    assert (s.reads, s.writes, s.hits, s.misses, s.write_misses) == (0, 0, 0, 0, 0)
    assert c.valid_block_count() == 0


def test_full_64_bit_addresses():
    c = build_cache(1024, 32, 4)
    top = (1 << 64) - 32
    assert c.access(top) is MISS
    assert c.access(top + 31) is HIT
    outcome = c.access_detailed(top, R)
    assert outcome.tag == top >> 8


def test_describe_mentions_policies():
    text = build_cache(512, 32, 1, 'FIFO', 'WRITE_BACK', 'NO_WRITE_ALLOCATE').describe()
    assert "Direct Mapped" in text
    assert "Replacement Policy: FIFO" in text
    assert "Write Policy: Write-Back" in text
    assert "Write Miss Policy: No-Write-Allocate" in text
    assert "Tag Bits: 55" in text


def test_format_contents_lists_every_set():
    c = build_cache(128, 16, 2)
    c.access(0x10)
    text = c.format_contents()
    assert "Set 1: [V:1 D:0 Tag:0x0] [Invalid]" in text
    assert text.count("Set ") == 4


@pytest.mark.parametrize('policy', ['LRU', 'FIFO', 'RANDOM'])
@pytest.mark.parametrize('write_policy', ['WRITE_THROUGH', 'WRITE_BACK'])
@pytest.mark.parametrize('write_miss_policy', ['WRITE_ALLOCATE', 'NO_WRITE_ALLOCATE'])
def test_randomized_invariants(policy, write_policy, write_miss_policy):
    """Mixed reads and writes keep the accounting invariants.

    - every access is classified exactly once as a hit or a miss
    - valid blocks never exceed capacity and never decrease
    """
    rng = random.Random(1234)
    c = build_cache(256, 16, 4, policy, write_policy, write_miss_policy, seed=7)
    previous_valid = 0
    for _ in range(500):
        op = W if rng.random() < 0.35 else R
        result = c.access(rng.randrange(0, 2048), op)
        if op is R:
            assert result in (HIT, MISS)
        else:
            assert result in (WRITE_HIT, WRITE_MISS)
        s = c.statistics()
        assert s.hits + s.misses == s.reads + s.writes
        valid = c.valid_block_count()
        assert previous_valid <= valid <= c.num_blocks
        previous_valid = valid
        if write_policy == 'WRITE_THROUGH':
            assert not any(e['dirty'] for row in c.contents() for e in row)


@pytest.mark.parametrize('policy', ['LRU', 'FIFO'])
def test_deterministic_replay_on_fresh_caches(policy):
    rng = random.Random(99)
    seq = [(rng.randrange(0, 4096), W if rng.random() < 0.3 else R) for _ in range(300)]
    runs = []
    for _ in range(2):
        c = build_cache(512, 32, 4, policy, 'WRITE_BACK')
        runs.append([c.access(a, op) for a, op in seq])
    assert runs[0] == runs[1]


def test_concurrent_access_keeps_counts_consistent():
    c = build_cache(1024, 32, 4, 'LRU', 'WRITE_BACK')

    def worker(offset):
        for i in range(200):
            c.access((i * 32 + offset) % 8192, W if i % 3 == 0 else R)

    threads = [threading.Thread(target=worker, args=(t * 64,)) for t in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    s = c.statistics()
    assert s.reads + s.writes == 800
    assert s.hits + s.misses == 800


def test_caches_do_not_share_policy_state():
    a = build_cache(128, 16, 2, 'LRU')
    b = build_cache(128, 16, 2, 'LRU')
    for addr in (0x0, 0x80, 0x0):
        a.access(addr)
    assert a.policy is not b.policy
    assert b.policy.stamps(0) == [0, 0]
    assert isinstance(a, SetAssociativeCache)
