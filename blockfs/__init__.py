"""
Single-file container filesystem.

Stores many named files inside one host file using a block
allocation table and a flat root directory.

Backends:
- FileBlockDevice (host file, cross-process locking)
- InMemoryBlockDevice (testing and scratch containers)
"""

from blockfs.base import (
    BlockDevice,
    ContainerBusyError,
    ContainerError,
    ContainerFileExistsError,
    ContainerFileNotFoundError,
    ContainerNotFoundError,
    CorruptContainerError,
    InvalidOffsetError,
    InvalidPathError,
    NoSpaceLeftError,
)
from blockfs.device import FileBlockDevice, InMemoryBlockDevice
from blockfs.directory import FileMetadata, FileType
from blockfs.factory import (
    DeviceBackend,
    create_block_device,
    get_device_backend,
    open_filesystem,
)
from blockfs.filesystem import CompactionResult, ContainerFileSystem, FileSystemStats

__version__ = "1.0.0.dev0"

__all__ = [
    # Devices
    "BlockDevice",
    "FileBlockDevice",
    "InMemoryBlockDevice",
    # Filesystem
    "ContainerFileSystem",
    "CompactionResult",
    "FileSystemStats",
    "FileMetadata",
    "FileType",
    # Factory functions
    "DeviceBackend",
    "create_block_device",
    "get_device_backend",
    "open_filesystem",
    # Errors
    "ContainerError",
    "ContainerBusyError",
    "ContainerNotFoundError",
    "CorruptContainerError",
    "ContainerFileNotFoundError",
    "ContainerFileExistsError",
    "NoSpaceLeftError",
    "InvalidPathError",
    "InvalidOffsetError",
]
