"""Cliente MQTT para recepción de batches de medición."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from .topics import TOPIC_PATTERN

logger = logging.getLogger(__name__)


class MQTTClient:
    """Cliente MQTT ligero.

    Responsabilidades:
    - Conexión/desconexión al broker (connect_async: un broker caído no
      impide arrancar el servicio)
    - Reconexión automática con backoff (loop de red de paho)
    - (Re)suscripción al topic en cada on_connect
    - Entrega de (topic, payload) al handler registrado
    """

    def __init__(
        self,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic: str = TOPIC_PATTERN,
        qos: int = 1,
        client_id: str = "ingest-gateway",
        reconnect_min_seconds: int = 1,
        reconnect_max_seconds: int = 30,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.topic = topic
        self.qos = qos
        self.client_id = f"{client_id}-{int(time.time())}"
        self._reconnect_min = reconnect_min_seconds
        self._reconnect_max = reconnect_max_seconds

        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._message_handler: Optional[Callable[[str, bytes], None]] = None

    def set_message_handler(self, handler: Callable[[str, bytes], None]) -> None:
        """handler(topic, payload) corre en el hilo de red de paho."""
        self._message_handler = handler

    def start(self) -> None:
        """Arranca el loop de red y la conexión en segundo plano."""
        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.reconnect_delay_set(
            min_delay=self._reconnect_min,
            max_delay=self._reconnect_max,
        )

        if self.username:
            self._client.username_pw_set(self.username, self.password)

        logger.info("[MQTT] Connecting to %s:%d as %s", self.broker_host, self.broker_port, self.client_id)
        self._client.connect_async(self.broker_host, self.broker_port, keepalive=60)
        self._client.loop_start()

    def stop(self) -> None:
        """Desconecta del broker y detiene el loop de red."""
        if self._client is not None:
            try:
                self._client.disconnect()
                self._client.loop_stop()
            except Exception as e:
                logger.warning("[MQTT] Error while stopping client: %s", e)
        self._connected = False

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._connected = False
            logger.error("[MQTT] Connection refused: %s", reason_code)
            return

        self._connected = True
        logger.info("[MQTT] Connected to broker %s:%d", self.broker_host, self.broker_port)
        # Suscribir en cada conexión: tras una reconexión la sesión puede ser nueva.
        client.subscribe(self.topic, qos=self.qos)
        logger.info("[MQTT] Subscribed to '%s' qos=%d", self.topic, self.qos)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        logger.warning("[MQTT] Disconnected (%s), paho will reconnect", reason_code)

    def _on_message(self, client, userdata, msg):
        if self._message_handler is not None:
            self._message_handler(msg.topic, msg.payload)

    @property
    def is_connected(self) -> bool:
        return self._connected
