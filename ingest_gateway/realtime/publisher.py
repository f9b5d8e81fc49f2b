"""Publicador de mediciones en tiempo real (lado gateway del broadcaster).

Cada llamada equivale a invocar `publishMeasurement` en el hub: se publica
el RealtimeMeasurement en el canal que escucha el relay del hub, y éste lo
reparte al grupo `tenant:<slug>`.

Fire-and-forget: publish_measurement nunca lanza. Devuelve False si Redis
no está disponible o la llamada excede el socket timeout.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

import redis

from common.contracts import RealtimeMeasurement

from .. import metrics
from .connection import RedisConnection

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "telemetry:publishMeasurement"


class MeasurementPublisher(Protocol):
    def publish_measurement(self, measurement: RealtimeMeasurement) -> bool: ...


class RedisRealtimePublisher:
    def __init__(self, connection: RedisConnection, channel: str = DEFAULT_CHANNEL):
        self._conn = connection
        self._channel = channel

    @property
    def channel(self) -> str:
        return self._channel

    def publish(
        self,
        tenant_slug: str,
        device_id: UUID,
        type: str,
        value: float,
        unit: Optional[str],
        time: datetime,
    ) -> bool:
        return self.publish_measurement(
            RealtimeMeasurement(
                tenant_slug=tenant_slug,
                device_id=device_id,
                type=type,
                value=value,
                unit=unit,
                time=time,
            )
        )

    def publish_measurement(self, measurement: RealtimeMeasurement) -> bool:
        if not self._conn.ensure_connected():
            metrics.REALTIME_PUBLISHED.labels(outcome="unavailable").inc()
            return False

        try:
            receivers = self._conn.client.publish(self._channel, measurement.to_wire())
        except redis.RedisError as e:
            # Timeout o conexión caída: se reintenta conectar en el próximo publish.
            self._conn.mark_failed(e)
            metrics.REALTIME_PUBLISHED.labels(outcome="failed").inc()
            logger.warning(
                "[REALTIME] Publish failed tenant=%s device_id=%s err=%s",
                measurement.tenant_slug,
                measurement.device_id,
                type(e).__name__,
            )
            return False

        metrics.REALTIME_PUBLISHED.labels(outcome="published").inc()
        logger.debug(
            "[REALTIME] Published tenant=%s type=%s value=%.4f receivers=%s",
            measurement.tenant_slug,
            measurement.type,
            measurement.value,
            receivers,
        )
        return True


class NullRealtimePublisher:
    """Usado cuando REALTIME_ENABLED=false."""

    def publish_measurement(self, measurement: RealtimeMeasurement) -> bool:
        return False
