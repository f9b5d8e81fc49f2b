"""Validación estructural de MeasurementBatch.

No consulta el registry ni modifica el batch. Los rangos numéricos no se
validan: valores fuera de rango se guardan tal cual.
"""

from __future__ import annotations

from typing import List

from .errors import BatchValidationError, FieldError
from .schemas import MeasurementBatch


def validate_batch(batch: MeasurementBatch) -> List[FieldError]:
    """Devuelve la lista de errores por campo (vacía si el batch es válido)."""
    errors: List[FieldError] = []

    if not batch.device_id or not batch.device_id.strip():
        errors.append(FieldError("deviceId", "must not be empty"))

    if not batch.api_key or not batch.api_key.strip():
        errors.append(FieldError("apiKey", "must not be empty"))

    if not batch.metrics:
        errors.append(FieldError("metrics", "must contain at least one metric"))

    return errors


def ensure_valid(batch: MeasurementBatch) -> None:
    errors = validate_batch(batch)
    if errors:
        raise BatchValidationError(errors)
