"""Message handling for the pub/sub ingress.

Runs on the paho network thread, so it only does cheap work (topic
parsing, JSON decoding) before handing the batch to the dispatcher.
Nothing raises past handle(): a bad message is logged and dropped and
the subscription keeps going.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .. import metrics
from ..errors import DecodeError
from ..schemas import MeasurementBatch
from ..validation import validate_batch
from .decoder import decode_batch
from .stats import ReceiverStats
from .topics import parse_topic

logger = logging.getLogger(__name__)

Dispatch = Callable[[str, MeasurementBatch], bool]


class MeasurementMessageHandler:
    """topic + payload → (tenant_slug, MeasurementBatch) → dispatch.

    Args:
        dispatch: recibe (tenant_slug, batch); devuelve False si lo descartó
        validate_batches: aplicar también aquí el validador estructural
    """

    def __init__(
        self,
        dispatch: Dispatch,
        validate_batches: bool = False,
        stats: Optional[ReceiverStats] = None,
    ):
        self._dispatch = dispatch
        self._validate = validate_batches
        self._stats = stats or ReceiverStats()

    @property
    def stats(self) -> ReceiverStats:
        return self._stats

    def handle(self, topic: str, payload: bytes) -> None:
        self._stats.incr("received")
        try:
            self._handle(topic, payload)
        except Exception as e:
            # Última barrera: nunca propagar al loop de paho.
            logger.exception("[MQTT] Handler error topic=%s err=%s", topic, type(e).__name__)
            self._stats.incr("dropped")
            metrics.MQTT_MESSAGES.labels(outcome="dropped").inc()

    def _handle(self, topic: str, payload: bytes) -> None:
        try:
            parsed = parse_topic(topic)
        except DecodeError as e:
            logger.warning("[MQTT] Skipping: %s", e)
            self._stats.incr("bad_topic")
            metrics.MQTT_MESSAGES.labels(outcome="bad_topic").inc()
            return

        try:
            batch = decode_batch(payload)
        except DecodeError as e:
            logger.warning("[MQTT] Skipping: could not deserialize payload on topic '%s': %s", topic, e)
            self._stats.incr("decode_errors")
            metrics.MQTT_MESSAGES.labels(outcome="decode_error").inc()
            return

        # Productores que omiten deviceId: se toma el serial del topic.
        if not batch.device_id or not batch.device_id.strip():
            batch = batch.with_device_id(parsed.device_serial)

        if self._validate:
            errors = validate_batch(batch)
            if errors:
                logger.warning(
                    "[MQTT] Validation failed topic=%s errors=%s",
                    topic,
                    [e.to_dict() for e in errors],
                )
                self._stats.incr("invalid")
                metrics.MQTT_MESSAGES.labels(outcome="invalid").inc()
                return

        if self._dispatch(parsed.tenant_slug, batch):
            self._stats.incr("dispatched")
            metrics.MQTT_MESSAGES.labels(outcome="dispatched").inc()
        else:
            self._stats.incr("dropped")
            metrics.MQTT_MESSAGES.labels(outcome="dropped").inc()
