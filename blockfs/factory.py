"""
Factory for creating devices and filesystems from settings.

This module picks the device implementation based on configuration
and opens, or formats, the configured container.
"""

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from blockfs.base import BlockDevice, ContainerNotFoundError
from blockfs.device import FileBlockDevice, InMemoryBlockDevice, PathLike
from blockfs.filesystem import ContainerFileSystem
from core.logging import get_logger


if TYPE_CHECKING:
    from core.config import Settings


logger = get_logger(__name__)


class DeviceBackend(str, Enum):
    """Supported block device backends."""
    FILE = "file"
    MEMORY = "memory"


def get_device_backend(settings: "Settings") -> DeviceBackend:
    """
    Determine which device backend to use based on settings.

    Raises:
        ValueError: If the configured backend is unknown
    """
    backend_str = settings.device_backend.lower()

    try:
        return DeviceBackend(backend_str)
    except ValueError:
        raise ValueError(
            f"Unsupported device backend: {backend_str}. "
            f"Supported backends: {[b.value for b in DeviceBackend]}"
        )


def create_block_device(
    settings: "Settings",
    path: Optional[PathLike] = None,
    *,
    new: bool = False,
) -> BlockDevice:
    """
    Create a block device instance based on settings.

    Args:
        settings: Application settings
        path: Container location, defaults to settings.container_path
        new: Create (and replace) the container file instead of attaching

    Returns:
        An open device, not yet formatted or mounted
    """
    backend = get_device_backend(settings)

    if backend == DeviceBackend.MEMORY:
        return InMemoryBlockDevice(name=f"memory:{path or settings.container_path}")

    path = Path(path or settings.container_path)
    if new:
        return FileBlockDevice.create_new(path, lock_timeout=settings.lock_timeout_seconds)
    return FileBlockDevice.attach(path, lock_timeout=settings.lock_timeout_seconds)


def open_filesystem(
    settings: "Settings",
    path: Optional[PathLike] = None,
    *,
    create: Optional[bool] = None,
) -> ContainerFileSystem:
    """
    Open the configured container, formatting a new one when missing.

    Args:
        settings: Application settings
        path: Container location, defaults to settings.container_path
        create: Override settings.create_if_missing

    Raises:
        ContainerNotFoundError: If the container is missing and creation is off
    """
    backend = get_device_backend(settings)
    create = settings.create_if_missing if create is None else create
    target = Path(path or settings.container_path)

    if backend == DeviceBackend.FILE and target.is_file():
        logger.info("Opening container", path=str(target))
        return ContainerFileSystem.load(
            target,
            sync_writes=settings.sync_writes,
            lock_timeout=settings.lock_timeout_seconds,
        )

    if not create:
        raise ContainerNotFoundError(f"Container not found: {target}")

    logger.info(
        "Creating container",
        path=str(target),
        backend=backend.value,
        capacity_bytes=settings.default_capacity_bytes,
    )
    device = create_block_device(settings, target, new=True)
    try:
        return ContainerFileSystem.format(
            device,
            settings.default_capacity_bytes,
            block_size=settings.block_size_bytes,
            data_region_ratio=settings.data_region_ratio,
            sync_writes=settings.sync_writes,
        )
    except BaseException:
        device.close()
        raise
