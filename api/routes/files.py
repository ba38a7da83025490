"""
File endpoints.

Provides CRUD operations for files inside the mounted container:
- GET /api/v1/files - List files
- PUT /api/v1/files/{path} - Create or replace a file
- POST /api/v1/files/{path}/append - Append to a file
- PATCH /api/v1/files/{path}?offset=N - Overwrite from an offset
- GET /api/v1/files/{path} - Download a file
- DELETE /api/v1/files/{path} - Delete a file
- POST /api/v1/files/{path}/move - Rename a file

Container errors raised here are translated to HTTP responses by the
exception handler registered in api.server.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_filesystem
from api.schemas.files import (
    FileListResponse,
    FileMoveRequest,
    FileMoveResponse,
    FileWriteResponse,
)
from blockfs.filesystem import ContainerFileSystem
from core.logging import get_logger


logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/files", tags=["Files"])


@router.get("", response_model=FileListResponse)
async def list_files(
    prefix: str = Query(default="", description="Only list paths starting with this prefix"),
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> FileListResponse:
    files = await run_in_threadpool(fs.list_files_under_prefix, prefix)
    return FileListResponse(prefix=prefix, files=files, count=len(files))


@router.post("/{path:path}/append", response_model=FileWriteResponse)
async def append_to_file(
    path: str,
    request: Request,
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> FileWriteResponse:
    """Append the request body to an existing file."""
    body = await request.body()
    size = await run_in_threadpool(fs.append_to_file, path, body)
    logger.info("Appended to file", path=path, appended=len(body), size=size)
    return FileWriteResponse(path=path, size=size)


@router.post("/{path:path}/move", response_model=FileMoveResponse)
async def move_file(
    path: str,
    move: FileMoveRequest,
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> FileMoveResponse:
    await run_in_threadpool(fs.move_file, path, move.destination)
    logger.info("Moved file", source=path, destination=move.destination)
    return FileMoveResponse(source=path, destination=move.destination)


@router.put("/{path:path}", response_model=FileWriteResponse)
async def write_file(
    path: str,
    request: Request,
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> FileWriteResponse:
    """
    Create a file, or replace its content, with the request body.
    """
    body = await request.body()
    size = await run_in_threadpool(fs.write_file, path, body)
    logger.info("Wrote file", path=path, size=size)
    return FileWriteResponse(path=path, size=size)


@router.patch("/{path:path}", response_model=FileWriteResponse)
async def write_at(
    path: str,
    request: Request,
    offset: int = Query(..., ge=0, description="Byte offset to start writing at"),
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> FileWriteResponse:
    """
    Overwrite part of a file.

    The offset may be at most the current file size. Bytes running past
    the end extend the file.
    """
    body = await request.body()
    size = await run_in_threadpool(fs.write_at, path, body, offset)
    return FileWriteResponse(path=path, size=size)


@router.get("/{path:path}")
async def read_file(
    path: str,
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> Response:
    data = await run_in_threadpool(fs.read_file, path)

    if data is None:
        raise HTTPException(
            status_code=404,
            detail=f"File {path} not found",
        )

    return Response(content=data, media_type="application/octet-stream")


@router.delete("/{path:path}")
async def delete_file(
    path: str,
    fs: ContainerFileSystem = Depends(get_filesystem),
) -> dict:
    deleted = await run_in_threadpool(fs.delete_file, path)

    if not deleted:
        raise HTTPException(
            status_code=404,
            detail=f"File {path} not found",
        )

    logger.info("Deleted file", path=path)
    return {
        "path": path,
        "message": "File deleted",
    }
