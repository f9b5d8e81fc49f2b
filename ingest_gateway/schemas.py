from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# Tipos conocidos por el simulador. Solo informativo: cualquier "type" se acepta.
KNOWN_METRIC_TYPES = frozenset(
    {"temperature", "humidity", "co2", "voc", "occupancy", "door", "energy", "power"}
)


class MetricEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str
    value: float
    unit: Optional[str] = None


class MeasurementBatch(BaseModel):
    """Paquete de métricas de un dispositivo en un instante.

    Mismo formato JSON por HTTP y por MQTT:
    {
        "deviceId": "dev-101",
        "apiKey": "dev-101-key",
        "timestamp": "2026-01-31T08:00:00Z",
        "metrics": [{"type": "co2", "value": 950, "unit": "ppm"}]
    }

    deviceId / apiKey / metrics tienen defaults vacíos para que el
    validador estructural pueda reportar los errores por campo.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    device_id: str = Field(default="", alias="deviceId")
    api_key: str = Field(default="", alias="apiKey")
    timestamp: datetime
    metrics: List[MetricEntry] = Field(default_factory=list)

    def with_device_id(self, device_id: str) -> "MeasurementBatch":
        return self.model_copy(update={"device_id": device_id})


class FieldErrorOut(BaseModel):
    field: str
    reason: str


class ValidationErrorOut(BaseModel):
    detail: str
    errors: List[FieldErrorOut] = Field(default_factory=list)


class IngestAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "accepted"
    tenant: str
    device_serial: str = Field(..., alias="deviceSerial")
    metrics: int


class MeasurementRowOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    time: datetime
    tenant_id: UUID = Field(..., alias="tenantId")
    device_id: UUID = Field(..., alias="deviceId")
    type: str
    value: float


class DeviceDebugOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_id: UUID = Field(..., alias="deviceId")
    count: int
    latest: List[MeasurementRowOut] = Field(default_factory=list)
