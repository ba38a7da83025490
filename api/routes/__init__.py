"""
API route modules.
"""

from api.routes.container import router as container_router
from api.routes.files import router as files_router
from api.routes.health import router as health_router

__all__ = ["container_router", "files_router", "health_router"]
