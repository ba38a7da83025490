"""
File-related request and response schemas.

These Pydantic models define the API contract and provide
automatic validation and documentation.
"""

from pydantic import BaseModel, Field


class FileWriteResponse(BaseModel):
    """Response after a write, append or overwrite."""

    path: str = Field(..., description="Path inside the container")
    size: int = Field(..., description="File size in bytes after the write")


class FileListResponse(BaseModel):
    """Paths stored in the container."""

    prefix: str = Field(default="", description="Prefix the listing was filtered by")
    files: list[str] = Field(default_factory=list)
    count: int = Field(default=0)


class FileMoveRequest(BaseModel):
    """Request body for renaming a file."""

    destination: str = Field(
        ...,
        min_length=1,
        description="New path inside the container",
        examples=["archive/2024/report.pdf"],
    )


class FileMoveResponse(BaseModel):
    source: str
    destination: str


class StatsResponse(BaseModel):
    """Usage figures of the mounted container."""

    block_size: int
    total_blocks: int
    used_blocks: int
    free_blocks: int
    file_count: int
    container_size_bytes: int
    max_addressable_space_bytes: int
    free_space_bytes: int = Field(
        ...,
        description="Capacity requested at creation minus bytes held by files",
    )


class CompactResponse(BaseModel):
    """Result of a compaction run."""

    size_before: int
    size_after: int
    bytes_reclaimed: int
    files_rewritten: int
