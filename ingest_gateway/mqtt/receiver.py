"""Receptor MQTT - ingreso pub/sub hacia el pipeline compartido.

Componentes:
- MQTTClient: conexión, reconexión y suscripción
- MeasurementMessageHandler: topic + JSON → MeasurementBatch
- AsyncBatchProcessor: cola + workers que ejecutan el pipeline
"""

from __future__ import annotations

import logging

from common.config import Settings

from ..pipeline import IngestService
from ..schemas import MeasurementBatch
from .async_processor import AsyncBatchProcessor
from .client import MQTTClient
from .message_handler import MeasurementMessageHandler

logger = logging.getLogger(__name__)


class MeasurementReceiver:
    def __init__(
        self,
        pipeline: IngestService,
        client: MQTTClient,
        queue_size: int = 1000,
        num_workers: int = 4,
        validate_batches: bool = False,
    ):
        self._pipeline = pipeline
        self._mqtt = client
        self._processor = AsyncBatchProcessor(
            process=self._process,
            max_queue_size=queue_size,
            num_workers=num_workers,
        )
        self._handler = MeasurementMessageHandler(
            dispatch=self._processor.submit,
            validate_batches=validate_batches,
        )
        self._running = False

    @classmethod
    def from_settings(cls, settings: Settings, pipeline: IngestService) -> "MeasurementReceiver":
        client = MQTTClient(
            broker_host=settings.mqtt_broker_host,
            broker_port=settings.mqtt_broker_port,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
            topic=settings.mqtt_topic,
            qos=settings.mqtt_qos,
            reconnect_min_seconds=settings.mqtt_reconnect_min_seconds,
            reconnect_max_seconds=settings.mqtt_reconnect_max_seconds,
        )
        return cls(
            pipeline=pipeline,
            client=client,
            queue_size=settings.mqtt_queue_size,
            num_workers=settings.mqtt_num_workers,
            validate_batches=settings.mqtt_validate_batches,
        )

    def _process(self, tenant_slug: str, batch: MeasurementBatch) -> None:
        self._pipeline.process(tenant_slug, batch, source="mqtt")

    @property
    def handler(self) -> MeasurementMessageHandler:
        return self._handler

    def start(self) -> None:
        """Inicia workers y luego el cliente MQTT (los mensajes ya tienen a dónde ir)."""
        if self._running:
            return
        self._processor.start()
        self._mqtt.set_message_handler(self._handler.handle)
        self._mqtt.start()
        self._running = True
        logger.info("[RECEIVER] Started")

    def stop(self) -> None:
        """Deja de recibir y drena los batches en vuelo antes de volver."""
        if not self._running:
            return
        self._running = False
        self._mqtt.stop()
        self._processor.stop(drain=True)
        logger.info("[RECEIVER] Stopped. %s", self._handler.stats)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._mqtt.is_connected

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "connected": self.is_connected,
            **self._handler.stats.to_dict(),
            "processor": self._processor.metrics,
        }
