"""
Abstract block device and the container error hierarchy.

This defines the contract every device implementation must follow,
whether it is backed by a host file or by process memory.

Design principles:
- Byte addressed: callers compute offsets, devices only move bytes
- Exclusive access through lock(), reentrant within a thread
- Result objects and typed errors, not status codes
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager


class BlockDevice(ABC):
    """
    Abstract interface for storage underneath a container filesystem.

    Usage:
        with FileBlockDevice.attach("data.fs") as device:
            with device.lock():
                header = device.read_block(0, 160)
    """

    @abstractmethod
    def store_block(self, offset: int, data: bytes) -> None:
        """
        Write bytes at an absolute offset.

        Writing past the current end grows the device. Any gap
        reads back as zero bytes.
        """
        pass

    @abstractmethod
    def read_block(self, offset: int, size: int) -> bytes:
        """
        Read exactly `size` bytes from an absolute offset.

        Bytes beyond the current end of the device read as zero.
        """
        pass

    @abstractmethod
    def size_bytes(self) -> int:
        """Current physical size of the device in bytes."""
        pass

    @abstractmethod
    def truncate(self, new_length: int) -> None:
        """Cut the device down to `new_length` bytes."""
        pass

    @abstractmethod
    def flush(self) -> None:
        """Push buffered writes to stable storage."""
        pass

    @abstractmethod
    def lock(self) -> AbstractContextManager[None]:
        """
        Exclusive access for the duration of the context.

        Must be reentrant for the owning thread so that public
        filesystem operations can be composed.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying resources."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable identifier used in logs."""
        pass

    def __enter__(self) -> "BlockDevice":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ContainerError(Exception):
    """Base exception for container filesystem operations."""
    pass


class ContainerNotFoundError(ContainerError):
    """The container file does not exist on the host."""
    pass


class ContainerBusyError(ContainerError):
    """The container lock could not be acquired in time."""
    pass


class CorruptContainerError(ContainerError):
    """On-disk structures are inconsistent or unreadable."""
    pass


class ContainerFileNotFoundError(ContainerError):
    """No file with the given path exists in the container."""
    pass


class ContainerFileExistsError(ContainerError):
    """A file with the given path already exists in the container."""
    pass


class NoSpaceLeftError(ContainerError):
    """The allocation table has no free block left."""
    pass


class InvalidPathError(ContainerError, ValueError):
    """The path cannot be stored in the root directory."""
    pass


class InvalidOffsetError(ContainerError, ValueError):
    """A write offset lies outside the file."""
    pass
