from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from .. import metrics
from ..deps import GatewayServices, get_services

router = APIRouter(tags=["health"])


@router.get("/health")
def health(services: GatewayServices = Depends(get_services)):
    details = services.health()
    status = "ok" if details["db_connected"] else "degraded"
    return {"status": status, **details}


@router.get("/metrics")
def prometheus_metrics() -> Response:
    body, content_type = metrics.render_latest()
    return Response(content=body, media_type=content_type)
