"""HTTP endpoints del gateway."""

from .debug import router as debug_router
from .health import router as health_router
from .ingest import router as ingest_router

__all__ = ["debug_router", "health_router", "ingest_router"]
