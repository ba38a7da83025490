"""
Pydantic schemas for API request/response validation.
"""

from api.schemas.files import (
    CompactResponse,
    FileListResponse,
    FileMoveRequest,
    FileMoveResponse,
    FileWriteResponse,
    StatsResponse,
)

__all__ = [
    "CompactResponse",
    "FileListResponse",
    "FileMoveRequest",
    "FileMoveResponse",
    "FileWriteResponse",
    "StatsResponse",
]
