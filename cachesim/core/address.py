"""Address decomposition into tag / set index / block offset.

An address is split into three bit fields:

    | tag | index | offset |

- offset: byte position inside the block (log2(block_size) bits)
- index:  which set the block maps to (log2(num_sets) bits)
- tag:    the remaining high bits, stored in the block to identify it

Both sizes must be powers of two; CacheConfiguration checks that before a
decoder is ever built, so nothing here validates.
"""
from typing import Tuple

ADDRESS_BITS = 64
ADDRESS_MASK = (1 << ADDRESS_BITS) - 1


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def log2(n: int) -> int:
    """Exact log2 of a power of two."""
    return n.bit_length() - 1


class AddressDecoder:
    def __init__(self, block_size: int, num_sets: int):
        self.offset_bits = log2(block_size)
        self.index_bits = log2(num_sets)
        self.offset_mask = (1 << self.offset_bits) - 1
        self.index_mask = (1 << self.index_bits) - 1

    @property
    def tag_bits(self) -> int:
        return ADDRESS_BITS - self.offset_bits - self.index_bits

    def set_index(self, address: int) -> int:
        return ((address & ADDRESS_MASK) >> self.offset_bits) & self.index_mask

    def tag(self, address: int) -> int:
        return (address & ADDRESS_MASK) >> (self.offset_bits + self.index_bits)

    def block_offset(self, address: int) -> int:
        return address & self.offset_mask

    def decode(self, address: int) -> Tuple[int, int, int]:
        """Return (tag, set_index, offset) for `address`."""
        return self.tag(address), self.set_index(address), self.block_offset(address)

    def block_address(self, tag: int, set_index: int) -> int:
        """Rebuild the base address of the block identified by (tag, set_index)."""
        return ((tag << (self.offset_bits + self.index_bits)) | (set_index << self.offset_bits)) & ADDRESS_MASK
