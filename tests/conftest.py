"""
Pytest configuration and fixtures.
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ.setdefault("BLOCKFS_ENVIRONMENT", "development")
os.environ.setdefault("BLOCKFS_DEBUG", "true")
os.environ.setdefault("BLOCKFS_LOG_LEVEL", "WARNING")

from blockfs.device import InMemoryBlockDevice  # noqa: E402
from blockfs.filesystem import ContainerFileSystem  # noqa: E402


CAPACITY_BYTES = 2 * 1024 * 1024


@pytest.fixture
def container_path(tmp_path):
    return tmp_path / "container.fs"


@pytest.fixture
def fs(container_path):
    """File-backed filesystem with the default 1 KiB blocks."""
    filesystem = ContainerFileSystem.create_new(container_path, CAPACITY_BYTES)
    yield filesystem
    filesystem.close()


@pytest.fixture
def memory_fs():
    """
    Small in-memory filesystem with 128 byte blocks.

    64 KiB * 0.8 / 128 = 410 blocks.
    """
    return ContainerFileSystem.format(InMemoryBlockDevice(), 64 * 1024, block_size=128)


@pytest.fixture
def tiny_fs():
    """
    In-memory filesystem with 7 blocks of 128 bytes.

    Block 0 holds the root directory, leaving 6 for data.
    """
    return ContainerFileSystem.format(InMemoryBlockDevice(), 1024, block_size=128)
