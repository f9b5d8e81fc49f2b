"""Parseo de topics `tenants/{tenantSlug}/devices/{serial}/measurements`."""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import DecodeError

TOPIC_PATTERN = "tenants/+/devices/+/measurements"


@dataclass(frozen=True)
class MeasurementTopic:
    tenant_slug: str
    device_serial: str


def parse_topic(topic: str) -> MeasurementTopic:
    """Extrae tenant y serial del topic.

    Se ignoran segmentos vacíos (`tenants//x` equivale a `tenants/x`).
    """
    parts = [p for p in (topic or "").split("/") if p]
    if (
        len(parts) != 5
        or parts[0] != "tenants"
        or parts[2] != "devices"
        or parts[4] != "measurements"
    ):
        raise DecodeError(f"Unexpected topic shape: '{topic}'")
    return MeasurementTopic(tenant_slug=parts[1], device_serial=parts[3])
