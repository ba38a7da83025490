"""
Container header.

The superblock occupies the first SUPERBLOCK_SIZE_BYTES of a container
and records where the allocation table and the data region start.
All integers are big-endian.
"""

import math
import struct
from dataclasses import dataclass

from blockfs.base import CorruptContainerError


SUPERBLOCK_SIZE_BYTES = 160
FAT_ENTRY_SIZE_BYTES = 4
DEFAULT_BLOCK_SIZE_BYTES = 1024
DEFAULT_DATA_REGION_RATIO = 0.8
MAGIC = b"BLOCKFS1"

# fat offset, fat entries, data region offset, capacity, block size, magic
_LAYOUT = struct.Struct(">iiiqi8s")
_INT32_MAX = 2**31 - 1


@dataclass(frozen=True)
class Superblock:
    fat_offset: int
    fat_num_entries: int
    data_region_offset: int
    max_addressable_space_bytes: int
    block_size: int = DEFAULT_BLOCK_SIZE_BYTES

    @classmethod
    def for_capacity(
        cls,
        capacity_bytes: int,
        block_size: int = DEFAULT_BLOCK_SIZE_BYTES,
        data_region_ratio: float = DEFAULT_DATA_REGION_RATIO,
    ) -> "Superblock":
        """
        Lay out a new container of the given capacity.

        A `data_region_ratio` share of the capacity is turned into data
        blocks, rounded up to a whole block.
        """
        if capacity_bytes <= 0:
            raise ValueError("capacity must be positive")
        if block_size <= 0:
            raise ValueError("block size must be positive")
        if not 0 < data_region_ratio <= 1:
            raise ValueError("data region ratio must be in (0, 1]")

        num_entries = math.ceil(capacity_bytes * data_region_ratio / block_size)
        data_region_offset = SUPERBLOCK_SIZE_BYTES + FAT_ENTRY_SIZE_BYTES * num_entries
        if data_region_offset > _INT32_MAX:
            raise ValueError(f"capacity too large for block size {block_size}")

        return cls(
            fat_offset=SUPERBLOCK_SIZE_BYTES,
            fat_num_entries=num_entries,
            data_region_offset=data_region_offset,
            max_addressable_space_bytes=capacity_bytes,
            block_size=block_size,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Superblock":
        if len(data) < _LAYOUT.size:
            raise CorruptContainerError("Superblock is truncated")

        fat_offset, num_entries, data_offset, capacity, block_size, magic = _LAYOUT.unpack_from(data)
        if magic != MAGIC:
            raise CorruptContainerError("Not a blockfs container (bad magic)")

        superblock = cls(fat_offset, num_entries, data_offset, capacity, block_size)
        expected_data_offset = fat_offset + FAT_ENTRY_SIZE_BYTES * num_entries
        if (
            fat_offset < SUPERBLOCK_SIZE_BYTES
            or num_entries <= 0
            or block_size <= 0
            or data_offset != expected_data_offset
        ):
            raise CorruptContainerError(f"Inconsistent superblock: {superblock}")
        return superblock

    def to_bytes(self) -> bytes:
        packed = _LAYOUT.pack(
            self.fat_offset,
            self.fat_num_entries,
            self.data_region_offset,
            self.max_addressable_space_bytes,
            self.block_size,
            MAGIC,
        )
        return packed.ljust(SUPERBLOCK_SIZE_BYTES, b"\x00")

    @property
    def fat_size_bytes(self) -> int:
        return self.fat_num_entries * FAT_ENTRY_SIZE_BYTES

    def fat_entry_offset(self, block: int) -> int:
        return self.fat_offset + FAT_ENTRY_SIZE_BYTES * block

    def block_offset(self, block: int) -> int:
        return self.data_region_offset + self.block_size * block

    def blocks_for(self, size: int) -> int:
        """Number of data blocks needed to hold `size` bytes."""
        return -(-size // self.block_size)
