"""Consulta de diagnóstico: cuántas mediciones tiene un dispositivo y las últimas.

Solo para inspección operativa; no forma parte del contrato de ingesta.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from ..deps import GatewayServices, get_services
from ..schemas import DeviceDebugOut, MeasurementRowOut

router = APIRouter(tags=["diagnostics"])


@router.get(
    "/ingest/debug/device/{device_id}",
    response_model=DeviceDebugOut,
    responses={404: {"description": "device_id is not a UUID"}},
)
def get_device_measurements(
    device_id: str,
    services: GatewayServices = Depends(get_services),
) -> DeviceDebugOut:
    # Un id que no es UUID no identifica ningún dispositivo: 404, no 400.
    try:
        device_uuid = UUID(device_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found") from None

    repository = services.repository
    count = repository.count_for_device(device_uuid)
    latest = repository.latest_for_device(device_uuid, limit=services.settings.debug_latest_limit)
    return DeviceDebugOut(
        device_id=device_uuid,
        count=count,
        latest=[
            MeasurementRowOut(
                id=row.id,
                time=row.time,
                tenant_id=row.tenant_id,
                device_id=row.device_id,
                type=row.type,
                value=row.value,
            )
            for row in latest
        ],
    )
