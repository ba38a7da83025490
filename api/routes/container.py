"""
Container-wide endpoints: usage figures and compaction.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_filesystem
from api.schemas.files import CompactResponse, StatsResponse
from blockfs.filesystem import ContainerFileSystem
from core.logging import get_logger


logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1", tags=["Container"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> StatsResponse:
    stats = await run_in_threadpool(fs.stats)
    return StatsResponse(**asdict(stats))


@router.post("/compact", response_model=CompactResponse)
async def compact(
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> CompactResponse:
    """
    Pack file data into the lowest blocks and truncate the container.

    Holds the container lock for the whole run.
    """
    logger.info("Compaction requested")
    result = await run_in_threadpool(fs.compact)
    return CompactResponse(
        size_before=result.size_before,
        size_after=result.size_after,
        bytes_reclaimed=result.bytes_reclaimed,
        files_rewritten=result.files_rewritten,
    )
