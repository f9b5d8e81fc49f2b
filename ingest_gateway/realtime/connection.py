"""Conexión a Redis con reconexión perezosa."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import redis

logger = logging.getLogger(__name__)


class RedisConnection:
    """Gestiona la conexión a Redis.

    Tras un fallo la conexión se marca caída; el siguiente uso vuelve a
    intentar conectar, como mucho una vez cada `reconnect_backoff_seconds`
    para no martillar un Redis caído.
    """

    def __init__(
        self,
        url: str,
        socket_timeout: float = 2.0,
        reconnect_backoff_seconds: float = 5.0,
        client_factory: Optional[Callable[..., "redis.Redis"]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._url = url
        self._socket_timeout = float(socket_timeout)
        self._backoff = float(reconnect_backoff_seconds)
        self._client_factory = client_factory or redis.Redis.from_url
        self._clock = clock
        self._client: Optional[redis.Redis] = None
        self._connected = False
        self._last_attempt: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> bool:
        """Conecta a Redis. Devuelve False (y loguea) si no es posible."""
        with self._lock:
            return self._connect_locked()

    def ensure_connected(self) -> bool:
        """Reconecta si la conexión está caída y ya pasó el backoff."""
        if self._connected:
            return True
        with self._lock:
            if self._connected:
                return True
            if self._last_attempt is not None and self._clock() - self._last_attempt < self._backoff:
                return False
            return self._connect_locked()

    def mark_failed(self, error: Exception) -> None:
        if self._connected:
            logger.warning("[REDIS] Connection lost: %s", error)
        self._connected = False

    def _connect_locked(self) -> bool:
        self._last_attempt = self._clock()
        try:
            if self._client is None:
                self._client = self._client_factory(
                    self._url,
                    decode_responses=False,
                    socket_timeout=self._socket_timeout,
                    socket_connect_timeout=self._socket_timeout,
                )
            self._client.ping()
            self._connected = True
            logger.info("[REDIS] Connected: %s", self._url.split("@")[-1])
            return True
        except redis.RedisError as e:
            self._connected = False
            logger.warning("[REDIS] Connection failed: %s", e)
            return False

    def disconnect(self) -> None:
        """Desconecta de Redis."""
        with self._lock:
            if self._client is not None:
                try:
                    self._client.close()
                except redis.RedisError as e:
                    logger.debug("[REDIS] Close error: %s", e)
            self._client = None
            self._connected = False
