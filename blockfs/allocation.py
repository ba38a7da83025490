"""
File allocation table.

One signed 32-bit entry per data block:
    FREE (-1)          block is unused
    END_OF_CHAIN (0)   last block of a chain
    n > 0              next block of the chain is n

Block 0 always heads the root directory chain, so 0 never appears
as a "next" pointer. Every change is written through to the device.
"""

import struct
from typing import Optional

from blockfs.base import BlockDevice, CorruptContainerError, NoSpaceLeftError
from blockfs.superblock import Superblock


FREE = -1
END_OF_CHAIN = 0

_ENTRY = struct.Struct(">i")


class AllocationTable:
    """In-memory copy of the FAT with write-through updates."""

    def __init__(self, device: BlockDevice, superblock: Superblock, entries: list[int]):
        if len(entries) != superblock.fat_num_entries:
            raise CorruptContainerError(
                f"FAT has {len(entries)} entries, superblock expects {superblock.fat_num_entries}"
            )
        self._device = device
        self._superblock = superblock
        self._entries = entries
        # Lowest index that may be free; everything below is known to be used
        self._free_hint = 0

    @classmethod
    def empty(cls, device: BlockDevice, superblock: Superblock) -> "AllocationTable":
        return cls(device, superblock, [FREE] * superblock.fat_num_entries)

    @classmethod
    def load(cls, device: BlockDevice, superblock: Superblock) -> "AllocationTable":
        raw = device.read_block(superblock.fat_offset, superblock.fat_size_bytes)
        return cls(device, superblock, cls.from_bytes(raw))

    @staticmethod
    def from_bytes(data: bytes) -> list[int]:
        count = len(data) // _ENTRY.size
        return list(struct.unpack(f">{count}i", data[:count * _ENTRY.size]))

    def to_bytes(self) -> bytes:
        return struct.pack(f">{len(self._entries)}i", *self._entries)

    def persist(self) -> None:
        """Write the whole table to the device."""
        self._device.store_block(self._superblock.fat_offset, self.to_bytes())

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, block: int) -> int:
        return self._entries[block]

    def set(self, block: int, value: int) -> None:
        self._entries[block] = value
        self._device.store_block(self._superblock.fat_entry_offset(block), _ENTRY.pack(value))
        if value == FREE and block < self._free_hint:
            self._free_hint = block

    def is_free(self, block: int) -> bool:
        return self._entries[block] == FREE

    def find_first_free(self, start: int = 0) -> int:
        """
        Lowest free block number not below `start`.

        Raises:
            NoSpaceLeftError: If every block from `start` on is in use
        """
        from_hint = start <= self._free_hint
        for block in range(max(start, self._free_hint), len(self._entries)):
            if self._entries[block] == FREE:
                if from_hint:
                    self._free_hint = block
                return block
        if from_hint:
            self._free_hint = len(self._entries)
        raise NoSpaceLeftError("No free blocks left in container")

    def allocate(self, after: Optional[int] = None) -> int:
        """
        Claim the lowest free block as a chain end.

        Args:
            after: Chain block the new block is linked behind

        Returns:
            The claimed block number
        """
        block = self.find_first_free()
        self.set(block, END_OF_CHAIN)
        if after is not None:
            self.set(after, block)
        return block

    def next_block(self, block: int) -> Optional[int]:
        """Successor of `block` in its chain, None at the chain end."""
        value = self._entries[block]
        if value > 0:
            return value
        if value == END_OF_CHAIN:
            return None
        raise CorruptContainerError(f"Block {block} is free but referenced by a chain")

    def chain(self, start: int) -> list[int]:
        """All blocks of the chain beginning at `start`, in order."""
        blocks: list[int] = []
        seen: set[int] = set()
        current: Optional[int] = start
        while current is not None:
            if not 0 <= current < len(self._entries):
                raise CorruptContainerError(f"Chain points outside the table: {current}")
            if current in seen:
                raise CorruptContainerError(f"Cycle in chain starting at block {start}")
            seen.add(current)
            blocks.append(current)
            current = self.next_block(current)
        return blocks

    def free_chain(self, start: int, keep_first: bool = False) -> int:
        """
        Release every block of a chain.

        With keep_first the head block stays allocated as a chain of
        length one. Returns the number of blocks released.
        """
        blocks = self.chain(start)
        if keep_first:
            self.set(blocks[0], END_OF_CHAIN)
            blocks = blocks[1:]
        for block in blocks:
            self.set(block, FREE)
        return len(blocks)

    def truncate_chain(self, start: int, keep: int) -> None:
        """Keep the first `keep` blocks of a chain and free the rest."""
        blocks = self.chain(start)
        if keep <= 0:
            self.free_chain(start)
            return
        if keep >= len(blocks):
            return
        self.set(blocks[keep - 1], END_OF_CHAIN)
        for block in blocks[keep:]:
            self.set(block, FREE)

    def free_count(self) -> int:
        return self._entries.count(FREE)

    def last_used_block(self) -> int:
        """Highest allocated block number, -1 if the table is empty."""
        for block in range(len(self._entries) - 1, -1, -1):
            if self._entries[block] != FREE:
                return block
        return -1

    def snapshot(self) -> list[int]:
        return list(self._entries)

    def restore(self, entries: list[int]) -> None:
        """Replace the table with a snapshot and write it out."""
        self._entries = list(entries)
        self._free_hint = 0
        self.persist()
