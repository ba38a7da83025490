"""
Block device implementations.

FileBlockDevice keeps the container in a host file and serializes
access across processes with a sidecar lock file (<container>.lock).
InMemoryBlockDevice keeps everything in a bytearray; it is used by
tests and by the "memory" device backend.
"""

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from filelock import FileLock, Timeout

from blockfs.base import BlockDevice, ContainerBusyError, ContainerNotFoundError
from core.logging import get_logger


logger = get_logger(__name__)

PathLike = Union[str, os.PathLike]


def lock_path_for(container_path: PathLike) -> Path:
    """Sidecar lock file used to serialize access to a container."""
    return Path(str(container_path) + ".lock")


class FileBlockDevice(BlockDevice):
    """
    Block device stored in a regular host file.

    Threads of one process are serialized by an RLock, processes by
    a filelock.FileLock. Both are reentrant, so nested lock() calls
    from the owning thread never deadlock.
    """

    def __init__(
        self,
        path: Path,
        handle: BinaryIO,
        lock_timeout: float = -1,
    ):
        """
        Wrap an already opened file.

        Prefer the create_new() and attach() factory methods.

        Args:
            path: Location of the container on the host
            handle: File object opened in binary read/write mode
            lock_timeout: Seconds to wait for the process lock, -1 waits forever
        """
        self._path = path
        self._handle = handle
        self._thread_lock = threading.RLock()
        self._file_lock = FileLock(str(lock_path_for(path)), timeout=lock_timeout)

    @classmethod
    def create_new(cls, path: PathLike, lock_timeout: float = -1) -> "FileBlockDevice":
        """
        Create an empty container file, replacing any existing one.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "w+b")
        logger.debug("Container file created", path=str(path))
        return cls(path, handle, lock_timeout=lock_timeout)

    @classmethod
    def attach(cls, path: PathLike, lock_timeout: float = -1) -> "FileBlockDevice":
        """
        Open an existing container file.

        Raises:
            ContainerNotFoundError: If the file does not exist
        """
        path = Path(path)
        if not path.is_file():
            raise ContainerNotFoundError(f"Container not found: {path}")
        handle = open(path, "r+b")
        logger.debug("Container file attached", path=str(path))
        return cls(path, handle, lock_timeout=lock_timeout)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def name(self) -> str:
        return str(self._path)

    def store_block(self, offset: int, data: bytes) -> None:
        if not data:
            return
        self._handle.seek(offset)
        self._handle.write(data)

    def read_block(self, offset: int, size: int) -> bytes:
        self._handle.seek(offset)
        data = self._handle.read(size)
        if len(data) < size:
            data += bytes(size - len(data))
        return data

    def size_bytes(self) -> int:
        self._handle.flush()
        return os.fstat(self._handle.fileno()).st_size

    def truncate(self, new_length: int) -> None:
        self._handle.flush()
        self._handle.truncate(new_length)

    def flush(self) -> None:
        self._handle.flush()
        os.fsync(self._handle.fileno())

    @contextmanager
    def lock(self) -> Iterator[None]:
        with self._thread_lock:
            try:
                self._file_lock.acquire()
            except Timeout as exc:
                raise ContainerBusyError(
                    f"Timed out waiting for lock on {self._path}"
                ) from exc
            try:
                yield
            finally:
                self._handle.flush()
                self._file_lock.release()

    def close(self) -> None:
        if self._handle.closed:
            return
        self._handle.close()
        logger.debug("Container file closed", path=str(self._path))


class InMemoryBlockDevice(BlockDevice):
    """Block device backed by a bytearray."""

    def __init__(self, initial: Optional[bytes] = None, name: str = "memory"):
        self._buffer = bytearray(initial or b"")
        self._lock = threading.RLock()
        self._name = name
        self.flush_count = 0

    @property
    def name(self) -> str:
        return self._name

    def store_block(self, offset: int, data: bytes) -> None:
        end = offset + len(data)
        if end > len(self._buffer):
            self._buffer.extend(bytes(end - len(self._buffer)))
        self._buffer[offset:end] = data

    def read_block(self, offset: int, size: int) -> bytes:
        data = bytes(self._buffer[offset:offset + size])
        if len(data) < size:
            data += bytes(size - len(data))
        return data

    def size_bytes(self) -> int:
        return len(self._buffer)

    def truncate(self, new_length: int) -> None:
        del self._buffer[new_length:]

    def flush(self) -> None:
        self.flush_count += 1

    @contextmanager
    def lock(self) -> Iterator[None]:
        with self._lock:
            yield

    def close(self) -> None:
        pass

    def getvalue(self) -> bytes:
        """Snapshot of the raw device contents."""
        return bytes(self._buffer)
