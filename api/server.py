"""
FastAPI application entry point.

Sets up the application with:
- Lifespan management (mount / unmount the container)
- Route registration
- Middleware configuration
- Error handling
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import set_filesystem
from api.routes import container_router, files_router, health_router
from blockfs.base import (
    ContainerBusyError,
    ContainerError,
    ContainerFileExistsError,
    ContainerFileNotFoundError,
    ContainerNotFoundError,
    InvalidOffsetError,
    InvalidPathError,
    NoSpaceLeftError,
)
from blockfs.factory import open_filesystem
from core.config import settings
from core.logging import bind_container, configure_logging, get_logger


logger = get_logger(__name__)

# Most specific first; ContainerError catches the rest
ERROR_STATUS_CODES: list[tuple[type[ContainerError], int]] = [
    (ContainerFileNotFoundError, 404),
    (ContainerNotFoundError, 404),
    (ContainerFileExistsError, 409),
    (InvalidPathError, 400),
    (InvalidOffsetError, 400),
    (NoSpaceLeftError, 507),
    (ContainerBusyError, 503),
    (ContainerError, 500),
]


def status_code_for(exc: ContainerError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Startup: open (or create) the configured container.
    Shutdown: close it so the host file and lock are released.
    """
    configure_logging()
    bind_container(settings.container_path)

    logger.info(
        "Starting blockfs service...",
        container=settings.container_path,
        device_backend=settings.device_backend,
    )

    filesystem = await run_in_threadpool(open_filesystem, settings)
    set_filesystem(filesystem)

    logger.info(
        "blockfs service started",
        host=settings.server_host,
        port=settings.server_port,
        files=len(filesystem.list_files()),
    )

    yield

    logger.info("Shutting down blockfs service...")
    set_filesystem(None)
    filesystem.close()
    logger.info("blockfs service stopped")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title="blockfs",
        description="Files stored inside a single container file.",
        version="1.0.0.dev0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(files_router)
    app.include_router(container_router)

    @app.exception_handler(ContainerError)
    async def container_exception_handler(request: Request, exc: ContainerError):
        status_code = status_code_for(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Container error",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": str(exc),
                "error": type(exc).__name__,
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.debug else "An error occurred",
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.server:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
    )
