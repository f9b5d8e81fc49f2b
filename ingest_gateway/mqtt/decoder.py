"""Decodificación de payloads MQTT a MeasurementBatch.

Los productores no siempre respetan el casing (`DeviceId`, `deviceid`,
`METRICS`...): las claves se comparan sin distinguir mayúsculas.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

import orjson
from pydantic import BaseModel, ValidationError

from ..errors import DecodeError
from ..schemas import MeasurementBatch, MetricEntry


def _key_map(model: type[BaseModel]) -> Dict[str, str]:
    keys: Dict[str, str] = {}
    for name, field in model.model_fields.items():
        keys[name.lower()] = field.alias or name
        if field.alias:
            keys[field.alias.lower()] = field.alias
    return keys


_BATCH_KEYS = _key_map(MeasurementBatch)
_METRIC_KEYS = _key_map(MetricEntry)


def _normalize(data: Mapping[str, Any], keys: Dict[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in data.items():
        canonical = keys.get(str(key).lower())
        if canonical is not None:
            out[canonical] = value
    return out


def decode_batch(payload: bytes) -> MeasurementBatch:
    """Decodifica el payload JSON. Lanza DecodeError si no es un batch."""
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise DecodeError(f"Payload must be a JSON object, got {type(data).__name__}")

    normalized = _normalize(data, _BATCH_KEYS)
    metrics = normalized.get("metrics")
    if metrics is None:
        normalized.pop("metrics", None)
    elif isinstance(metrics, list):
        normalized["metrics"] = [
            _normalize(m, _METRIC_KEYS) if isinstance(m, dict) else m for m in metrics
        ]
    # device_id/api_key null → vacío (se rellena desde el topic más adelante)
    for key in ("deviceId", "apiKey"):
        if key in normalized and normalized[key] is None:
            normalized[key] = ""

    try:
        return MeasurementBatch.model_validate(normalized)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise DecodeError(f"Payload does not match MeasurementBatch ({fields})") from e
