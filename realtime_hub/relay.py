"""Relay Redis → hub.

El gateway publica cada RealtimeMeasurement en REALTIME_CHANNEL; el relay
lo recibe y lo entrega con TelemetryHub.publish_measurement. Si Redis se
cae, se reconecta con backoff hasta que la app se apaga (cancelación).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

import redis
import redis.asyncio as aioredis
from pydantic import ValidationError

from common.contracts import RealtimeMeasurement

from .hub import TelemetryHub

logger = logging.getLogger(__name__)


class RedisRelay:
    def __init__(
        self,
        hub: TelemetryHub,
        url: str,
        channel: str,
        reconnect_backoff_seconds: float = 5.0,
    ):
        self._hub = hub
        self._url = url
        self._channel = channel
        self._backoff = float(reconnect_backoff_seconds)
        self._task: Optional[asyncio.Task] = None
        self._relayed = 0
        self._rejected = 0

    @property
    def stats(self) -> dict:
        return {
            "running": self._task is not None and not self._task.done(),
            "channel": self._channel,
            "relayed": self._relayed,
            "rejected": self._rejected,
        }

    async def handle_message(self, data: Union[bytes, str]) -> int:
        """Decodifica un mensaje del canal y lo reparte. Mensajes inválidos se descartan."""
        try:
            measurement = RealtimeMeasurement.model_validate_json(data)
        except ValidationError as e:
            self._rejected += 1
            logger.warning("[RELAY] Dropping malformed measurement: %d errors", e.error_count())
            return 0
        self._relayed += 1
        return await self._hub.publish_measurement(measurement)

    async def run(self) -> None:
        while True:
            client = aioredis.from_url(self._url)
            try:
                async with client.pubsub() as pubsub:
                    await pubsub.subscribe(self._channel)
                    logger.info("[RELAY] Subscribed to '%s' on %s", self._channel, self._url.split("@")[-1])
                    async for message in pubsub.listen():
                        if message.get("type") != "message":
                            continue
                        await self.handle_message(message["data"])
            except redis.RedisError as e:
                logger.warning("[RELAY] Redis error: %s; reconnecting in %.1fs", e, self._backoff)
            finally:
                await client.aclose()
            await asyncio.sleep(self._backoff)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run(), name="redis-relay")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[RELAY] Stopped. relayed=%d rejected=%d", self._relayed, self._rejected)
