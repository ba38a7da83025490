"""
FastAPI dependencies for dependency injection.

Provides the mounted container filesystem to route handlers.
"""

from typing import Optional

from blockfs.filesystem import ContainerFileSystem


# Global singleton (set during app lifespan)
_filesystem: Optional[ContainerFileSystem] = None


def set_filesystem(filesystem: Optional[ContainerFileSystem]) -> None:
    """Set (or clear) the global filesystem instance."""
    global _filesystem
    _filesystem = filesystem


def is_filesystem_ready() -> bool:
    return _filesystem is not None


async def get_filesystem() -> ContainerFileSystem:
    """
    Dependency that provides the mounted filesystem.

    Usage:
        @router.get("/files")
        async def list_files(
            fs: ContainerFileSystem = Depends(get_filesystem)
        ):
            ...
    """
    if _filesystem is None:
        raise RuntimeError("Filesystem not initialized")
    return _filesystem
