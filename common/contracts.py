"""Contrato de mensaje en tiempo real compartido por gateway y hub."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RealtimeMeasurement(BaseModel):
    """Una métrica ya persistida, difundida al grupo del tenant.

    Formato en el canal (camelCase):
    {
        "tenantSlug": "innovia",
        "deviceId": "0b8f...",
        "type": "co2",
        "value": 950.0,
        "unit": "ppm",
        "time": "2026-01-31T08:00:00+00:00"
    }
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tenant_slug: str = Field(..., alias="tenantSlug", min_length=1)
    device_id: UUID = Field(..., alias="deviceId")
    type: str
    value: float
    unit: Optional[str] = None
    time: datetime

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_push_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
