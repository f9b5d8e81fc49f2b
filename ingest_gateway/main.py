from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
import uvicorn

from common.config import get_settings
from common.logging_setup import configure_logging

from .deps import GatewayServices, build_services
from .endpoints import debug_router, health_router, ingest_router
from .errors import (
    BatchValidationError,
    IdentityNotFoundError,
    IngestError,
    PersistenceError,
    TransportError,
)

logger = logging.getLogger(__name__)


def _field_errors_from_pydantic(exc: RequestValidationError) -> list[dict]:
    errors = []
    for err in exc.errors():
        # loc = ("body", "metrics", 0, "value") → "metrics.0.value"
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "path", "query")]
        errors.append({"field": ".".join(loc) or "body", "reason": err.get("msg", "invalid")})
    return errors


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid request", "errors": _field_errors_from_pydantic(exc)},
        )

    @app.exception_handler(BatchValidationError)
    async def _batch_validation(request: Request, exc: BatchValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc), "errors": [e.to_dict() for e in exc.errors]},
        )

    @app.exception_handler(IdentityNotFoundError)
    async def _identity_not_found(request: Request, exc: IdentityNotFoundError):
        logger.warning("[HTTP] %s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(TransportError)
    async def _transport(request: Request, exc: TransportError):
        logger.error("[HTTP] %s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def _persistence(request: Request, exc: PersistenceError):
        logger.error("[HTTP] %s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(IngestError)
    async def _ingest(request: Request, exc: IngestError):
        logger.error("[HTTP] %s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": f"Ingest error: {type(exc).__name__}"})


def create_app(services: Optional[GatewayServices] = None) -> FastAPI:
    """Crea la app del gateway.

    Sin `services` se construyen desde el entorno al arrancar; los tests
    pasan un GatewayServices armado con dobles.
    """
    settings = services.settings if services is not None else get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = services if services is not None else build_services(settings)
        svc.start()
        app.state.services = svc
        logger.info("[GATEWAY] Started")
        try:
            yield
        finally:
            svc.close()

    app = FastAPI(title="Ingest Gateway", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)

    app.include_router(ingest_router)
    app.include_router(debug_router)
    app.include_router(health_router)

    @app.get("/", include_in_schema=False)
    def root():
        return RedirectResponse(url="/docs")

    return app


def run() -> None:
    """Entry point: `ingest-gateway` (host/port via GATEWAY_HOST / GATEWAY_PORT)."""
    uvicorn.run(
        create_app(),
        host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
        port=int(os.getenv("GATEWAY_PORT", "5102")),
    )
