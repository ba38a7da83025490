"""
Application configuration management.

Uses pydantic-settings for type-safe environment variable parsing.
All configuration is centralized here so the filesystem, the API and
the CLI read the same values instead of calling os.getenv() directly.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation and type coercion.

    Values are loaded from BLOCKFS_* environment variables or a .env file.
    All fields have sensible defaults for local development.
    """

    model_config = SettingsConfigDict(
        env_prefix="BLOCKFS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Container
    container_path: str = "container.fs"
    default_capacity_bytes: int = Field(default=2 * 1024 * 1024, gt=0)
    create_if_missing: bool = True

    # Layout used when formatting a new container.
    # Existing containers keep whatever their superblock says.
    block_size_bytes: int = Field(default=1024, ge=64)
    data_region_ratio: float = Field(default=0.8, gt=0.0, le=1.0)

    # Device
    # Options: "file", "memory"
    device_backend: Literal["file", "memory"] = "file"
    sync_writes: bool = False
    lock_timeout_seconds: float = -1

    # Server
    server_host: str = "0.0.0.0"
    server_port: int = 8000
    debug: bool = True

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_memory_backend(self) -> bool:
        """Check if containers live in process memory only."""
        return self.device_backend == "memory"


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings singleton.

    Use this function to get settings instance throughout the application.
    The @lru_cache ensures we only parse environment once.
    """
    return Settings()


# Convenience export for direct import
settings = get_settings()
