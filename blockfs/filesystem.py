"""
Container filesystem.

Stores many flat-named files inside a single block device:

    superblock | allocation table | data blocks

The root directory lives in the chain that starts at data block 0 and
is rewritten after every change. Every public method runs under the
device lock, so a container can be shared between threads and, for
FileBlockDevice, between processes.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from blockfs.allocation import END_OF_CHAIN, AllocationTable
from blockfs.base import (
    BlockDevice,
    ContainerFileExistsError,
    ContainerFileNotFoundError,
    InvalidOffsetError,
    NoSpaceLeftError,
)
from blockfs.device import FileBlockDevice, PathLike
from blockfs.directory import Directory, FileMetadata, validate_path
from blockfs.superblock import (
    DEFAULT_BLOCK_SIZE_BYTES,
    DEFAULT_DATA_REGION_RATIO,
    SUPERBLOCK_SIZE_BYTES,
    Superblock,
)
from core.logging import get_logger


logger = get_logger(__name__)

ROOT_DIR_BLOCK = 0


@dataclass(frozen=True)
class FileSystemStats:
    """Point-in-time usage figures for a container."""
    block_size: int
    total_blocks: int
    used_blocks: int
    free_blocks: int
    file_count: int
    container_size_bytes: int
    max_addressable_space_bytes: int
    free_space_bytes: int


@dataclass(frozen=True)
class CompactionResult:
    size_before: int
    size_after: int
    files_rewritten: int

    @property
    def bytes_reclaimed(self) -> int:
        return self.size_before - self.size_after


class ContainerFileSystem:
    """
    Files inside a single container.

    Usage:
        with ContainerFileSystem.create_new("data.fs", 2 * 1024 * 1024) as fs:
            fs.create_file("notes/today.txt")
            fs.append_to_file("notes/today.txt", b"hello")

        with ContainerFileSystem.load("data.fs") as fs:
            fs.read_file("notes/today.txt")  # b"hello"
    """

    def __init__(
        self,
        device: BlockDevice,
        superblock: Superblock,
        allocation_table: AllocationTable,
        root_dir: Directory,
        sync_writes: bool = False,
    ):
        self._device = device
        self._superblock = superblock
        self._fat = allocation_table
        self._root_dir = root_dir
        self._sync_writes = sync_writes
        self._log = logger.bind(container=device.name)

    # =========================================
    # Factory methods
    # =========================================

    @classmethod
    def format(
        cls,
        device: BlockDevice,
        capacity_bytes: int,
        *,
        block_size: int = DEFAULT_BLOCK_SIZE_BYTES,
        data_region_ratio: float = DEFAULT_DATA_REGION_RATIO,
        sync_writes: bool = False,
    ) -> "ContainerFileSystem":
        """Write a fresh, empty filesystem onto `device`."""
        superblock = Superblock.for_capacity(capacity_bytes, block_size, data_region_ratio)

        with device.lock():
            device.truncate(0)
            device.store_block(0, superblock.to_bytes())
            fat = AllocationTable.empty(device, superblock)
            fat.persist()
            fat.set(ROOT_DIR_BLOCK, END_OF_CHAIN)

            fs = cls(device, superblock, fat, Directory(ROOT_DIR_BLOCK), sync_writes)
            fs._flush_root_dir()
            fs._commit()

        logger.info(
            "Container formatted",
            container=device.name,
            capacity_bytes=capacity_bytes,
            block_size=block_size,
            blocks=superblock.fat_num_entries,
        )
        return fs

    @classmethod
    def mount(cls, device: BlockDevice, *, sync_writes: bool = False) -> "ContainerFileSystem":
        """Read the superblock, allocation table and root directory of `device`."""
        with device.lock():
            superblock = Superblock.from_bytes(device.read_block(0, SUPERBLOCK_SIZE_BYTES))
            fat = AllocationTable.load(device, superblock)
            root_dir = Directory.from_bytes(
                cls._read_chain(device, superblock, fat, ROOT_DIR_BLOCK),
                ROOT_DIR_BLOCK,
            )

        logger.info(
            "Container mounted",
            container=device.name,
            files=len(root_dir),
            blocks=superblock.fat_num_entries,
        )
        return cls(device, superblock, fat, root_dir, sync_writes)

    @classmethod
    def create_new(
        cls,
        path: PathLike,
        capacity_bytes: int,
        *,
        block_size: int = DEFAULT_BLOCK_SIZE_BYTES,
        data_region_ratio: float = DEFAULT_DATA_REGION_RATIO,
        sync_writes: bool = False,
        lock_timeout: float = -1,
    ) -> "ContainerFileSystem":
        """Create a container file at `path`, replacing any existing file."""
        device = FileBlockDevice.create_new(path, lock_timeout=lock_timeout)
        try:
            return cls.format(
                device,
                capacity_bytes,
                block_size=block_size,
                data_region_ratio=data_region_ratio,
                sync_writes=sync_writes,
            )
        except BaseException:
            device.close()
            raise

    @classmethod
    def load(
        cls,
        path: PathLike,
        *,
        sync_writes: bool = False,
        lock_timeout: float = -1,
    ) -> "ContainerFileSystem":
        """Open an existing container file."""
        device = FileBlockDevice.attach(path, lock_timeout=lock_timeout)
        try:
            return cls.mount(device, sync_writes=sync_writes)
        except BaseException:
            device.close()
            raise

    # =========================================
    # Public operations
    # =========================================

    @property
    def superblock(self) -> Superblock:
        return self._superblock

    @property
    def device(self) -> BlockDevice:
        return self._device

    def create_file(self, path: str) -> None:
        """
        Register a new empty file.

        Raises:
            ContainerFileExistsError: If the path is taken
            InvalidPathError: If the path cannot be stored
        """
        validate_path(path)
        with self._device.lock():
            if self._root_dir.exists(path):
                raise ContainerFileExistsError(f"File already exists: {path}")
            with self._rollback_on_no_space():
                self._root_dir.add_file(path)
                self._flush_root_dir()
            self._commit()
        self._log.debug("File created", path=path)

    def append_to_file(self, path: str, data: bytes) -> int:
        """
        Append bytes to the end of a file.

        Returns:
            The new file size

        Raises:
            ContainerFileNotFoundError: If the file does not exist
            NoSpaceLeftError: If the container is full; the file is left unchanged
        """
        with self._device.lock():
            metadata = self._require(path)
            metadata = self._write_range(path, metadata, metadata.size, data)
        self._log.debug("File appended", path=path, appended=len(data), size=metadata.size)
        return metadata.size

    def write_at(self, path: str, data: bytes, offset: int) -> int:
        """
        Overwrite a file starting at `offset`.

        Bytes that run past the current end extend the file.

        Returns:
            The new file size

        Raises:
            ContainerFileNotFoundError: If the file does not exist
            InvalidOffsetError: If offset is negative or beyond the end of the file
        """
        with self._device.lock():
            metadata = self._require(path)
            if not 0 <= offset <= metadata.size:
                raise InvalidOffsetError(
                    f"Offset {offset} outside file {path} of size {metadata.size}"
                )
            metadata = self._write_range(path, metadata, offset, data)
        self._log.debug("File written", path=path, offset=offset, written=len(data), size=metadata.size)
        return metadata.size

    def write_file(self, path: str, data: bytes) -> int:
        """
        Create or replace a file with `data` in one locked step.

        Raises:
            NoSpaceLeftError: Before touching the old content if `data` cannot fit
        """
        validate_path(path)
        with self._device.lock():
            existing = self._root_dir.get(path)
            available = self._fat.free_count() + len(self._fat.chain(ROOT_DIR_BLOCK))
            if existing is not None and not existing.is_empty:
                available += len(self._fat.chain(existing.starting_block))
            if self._blocks_needed_to_write(path, data) > available:
                raise NoSpaceLeftError(f"Not enough free blocks for {path} ({len(data)} bytes)")

            if existing is not None:
                self.delete_file(path)
            self.create_file(path)
            return self.append_to_file(path, data)

    def read_file(self, path: str) -> Optional[bytes]:
        """Whole file content, or None if the file does not exist."""
        with self._device.lock():
            metadata = self._root_dir.get(path)
            if metadata is None:
                return None
            return self._read_file(metadata)

    def get_file_metadata(self, path: str) -> Optional[FileMetadata]:
        with self._device.lock():
            return self._root_dir.get(path)

    def delete_file(self, path: str) -> bool:
        """
        Remove a file and release its blocks.

        Returns:
            True if the file existed
        """
        with self._device.lock():
            metadata = self._root_dir.get(path)
            if metadata is None:
                return False

            self._root_dir.remove_file(path)
            self._flush_root_dir()
            if not metadata.is_empty:
                self._fat.free_chain(metadata.starting_block)
            self._commit()
        self._log.debug("File deleted", path=path, size=metadata.size)
        return True

    def move_file(self, old_path: str, new_path: str) -> None:
        """
        Rename a file. Data blocks stay where they are.

        Raises:
            ContainerFileNotFoundError: If `old_path` does not exist
            ContainerFileExistsError: If `new_path` is taken
        """
        validate_path(new_path)
        with self._device.lock():
            self._require(old_path)
            if old_path == new_path:
                return
            if self._root_dir.exists(new_path):
                raise ContainerFileExistsError(f"File already exists: {new_path}")
            with self._rollback_on_no_space():
                self._root_dir.move(old_path, new_path)
                self._flush_root_dir()
            self._commit()
        self._log.debug("File moved", old_path=old_path, new_path=new_path)

    def list_files(self) -> list[str]:
        with self._device.lock():
            return self._root_dir.file_names()

    def list_files_under_prefix(self, prefix: str) -> list[str]:
        with self._device.lock():
            return [name for name in self._root_dir.file_names() if name.startswith(prefix)]

    def free_space_bytes(self) -> int:
        """Capacity requested at creation minus the bytes held by files."""
        with self._device.lock():
            return self._superblock.max_addressable_space_bytes - self._root_dir.total_size_bytes()

    def stats(self) -> FileSystemStats:
        with self._device.lock():
            free_blocks = self._fat.free_count()
            return FileSystemStats(
                block_size=self._superblock.block_size,
                total_blocks=len(self._fat),
                used_blocks=len(self._fat) - free_blocks,
                free_blocks=free_blocks,
                file_count=len(self._root_dir),
                container_size_bytes=self._device.size_bytes(),
                max_addressable_space_bytes=self._superblock.max_addressable_space_bytes,
                free_space_bytes=(
                    self._superblock.max_addressable_space_bytes - self._root_dir.total_size_bytes()
                ),
            )

    def compact(self) -> CompactionResult:
        """
        Pack file data into the lowest blocks and shrink the container.

        Each file is read, its blocks released and its data written
        again into the lowest free blocks. Afterwards the container is
        truncated after the last used block.
        """
        with self._device.lock():
            size_before = self._device.size_bytes()
            rewritten = 0

            for path, metadata in self._root_dir.items():
                if metadata.is_empty:
                    continue
                data = self._read_file(metadata)
                self._fat.free_chain(metadata.starting_block)
                start = self._fat.allocate()
                self._write_from(start, 0, data)
                self._root_dir.update(path, starting_block=start)
                self._flush_root_dir()
                rewritten += 1

            new_length = self._superblock.block_offset(self._fat.last_used_block() + 1)
            if new_length < size_before:
                self._device.truncate(new_length)
            self._commit()
            size_after = self._device.size_bytes()

        result = CompactionResult(size_before, size_after, rewritten)
        self._log.info(
            "Container compacted",
            size_before=size_before,
            size_after=size_after,
            files_rewritten=rewritten,
        )
        return result

    def close(self) -> None:
        self._device.close()

    def __enter__(self) -> "ContainerFileSystem":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================
    # Internals (caller holds the device lock)
    # =========================================

    def _require(self, path: str) -> FileMetadata:
        metadata = self._root_dir.get(path)
        if metadata is None:
            raise ContainerFileNotFoundError(f"File not found: {path}")
        return metadata

    def _commit(self) -> None:
        if self._sync_writes:
            self._device.flush()

    @contextmanager
    def _rollback_on_no_space(self) -> Iterator[None]:
        """
        Undo allocation table and directory changes if the container fills up.

        Data already overwritten in place by write_at is not restored.
        """
        fat_snapshot = self._fat.snapshot()
        dir_snapshot = self._root_dir.copy()
        try:
            yield
        except NoSpaceLeftError:
            self._fat.restore(fat_snapshot)
            self._root_dir = dir_snapshot
            self._write_from(ROOT_DIR_BLOCK, 0, self._root_dir_image())
            self._log.warning("Container full, change rolled back")
            raise

    def _blocks_needed_to_write(self, path: str, data: bytes) -> int:
        """
        Data plus directory blocks held at the peak of replacing `path` with `data`.

        The directory passes through a state with an empty entry before
        it records the final one; whichever is longer sets its size. The
        final starting block is taken as the widest block number.
        """
        created = self._root_dir.copy()
        created.add_file(path)
        written = created.copy()
        if data:
            written.add_file(path, len(self._fat) - 1, len(data))
        dir_blocks = max(
            self._superblock.blocks_for(len(created.to_bytes())),
            self._superblock.blocks_for(len(written.to_bytes())),
        )
        return self._superblock.blocks_for(len(data)) + dir_blocks

    def _write_range(self, path: str, metadata: FileMetadata, offset: int, data: bytes) -> FileMetadata:
        if not data:
            return metadata

        block_size = self._superblock.block_size
        with self._rollback_on_no_space():
            if metadata.is_empty:
                first = self._fat.allocate()
                metadata = self._root_dir.update(path, starting_block=first)
                block = first
            else:
                blocks = self._fat.chain(metadata.starting_block)
                index = offset // block_size
                if index == len(blocks):
                    # offset sits on the boundary right after a full last block
                    block = self._fat.allocate(after=blocks[-1])
                else:
                    block = blocks[index]

            self._write_from(block, offset % block_size, data)
            metadata = self._root_dir.update(path, size=max(metadata.size, offset + len(data)))
            self._flush_root_dir()
        self._commit()
        return metadata

    def _write_from(self, block: int, offset_in_block: int, data: bytes) -> int:
        """
        Write `data` starting inside `block`, following its chain and
        extending the chain with new blocks where it ends.

        Returns the last block written.
        """
        block_size = self._superblock.block_size
        if offset_in_block >= block_size:
            raise ValueError("offset cannot be bigger than the block size")

        position = 0
        while True:
            chunk = data[position:position + block_size - offset_in_block]
            self._device.store_block(self._superblock.block_offset(block) + offset_in_block, chunk)
            position += len(chunk)
            offset_in_block = 0
            if position >= len(data):
                return block

            next_block = self._fat.next_block(block)
            if next_block is None:
                next_block = self._fat.allocate(after=block)
            block = next_block

    def _root_dir_image(self, directory: Optional[Directory] = None) -> bytes:
        """Serialized directory zero padded to whole blocks, clearing stale bytes in its last block."""
        if directory is None:
            directory = self._root_dir
        data = directory.to_bytes()
        block_size = self._superblock.block_size
        return data.ljust(self._superblock.blocks_for(len(data)) * block_size, b"\x00")

    def _flush_root_dir(self) -> None:
        data = self._root_dir_image()
        self._fat.free_chain(ROOT_DIR_BLOCK, keep_first=True)
        self._write_from(ROOT_DIR_BLOCK, 0, data)

    def _read_file(self, metadata: FileMetadata) -> bytes:
        if metadata.is_empty or metadata.size == 0:
            return b""
        data = self._read_chain(self._device, self._superblock, self._fat, metadata.starting_block)
        return data[:metadata.size]

    @staticmethod
    def _read_chain(
        device: BlockDevice,
        superblock: Superblock,
        fat: AllocationTable,
        start: int,
    ) -> bytes:
        return b"".join(
            device.read_block(superblock.block_offset(block), superblock.block_size)
            for block in fat.chain(start)
        )


__all__ = [
    "CompactionResult",
    "ContainerFileSystem",
    "FileSystemStats",
    "ROOT_DIR_BLOCK",
]
