"""HTTP ingress: POST /ingest/http/{tenant}."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from ..deps import get_pipeline
from ..errors import BatchValidationError
from ..pipeline import IngestService
from ..schemas import IngestAccepted, MeasurementBatch, ValidationErrorOut
from ..validation import ensure_valid

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ingest"])


@router.post(
    "/ingest/http/{tenant}",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=IngestAccepted,
    responses={
        400: {"model": ValidationErrorOut, "description": "Structural validation failed"},
        404: {"description": "Tenant or device not found in the registry"},
        503: {"description": "Registry, storage or transport unavailable"},
    },
)
def ingest_http(
    tenant: str,
    payload: MeasurementBatch,
    pipeline: IngestService = Depends(get_pipeline),
) -> IngestAccepted:
    """Valida el batch y lo procesa con el pipeline compartido.

    202 solo garantiza que el procesamiento terminó sin error: filas
    persistidas y publicación realtime intentada.
    """
    try:
        ensure_valid(payload)
    except BatchValidationError as e:
        logger.warning(
            "[HTTP] Validation failed for ingest payload (tenant: %s, serial: %s): %s",
            tenant,
            payload.device_id,
            [err.to_dict() for err in e.errors],
        )
        raise

    outcome = pipeline.process(tenant, payload, source="http")
    return IngestAccepted(
        tenant=tenant,
        device_serial=outcome.device_serial,
        metrics=outcome.rows_persisted,
    )
