"""Contenedor de servicios del gateway.

Recursos de larga vida compartidos entre requests HTTP y workers MQTT:
engine de BD, cliente del registry (+ caché de identidades), conexión
Redis y receptor MQTT. Se construyen una vez en el lifespan de la app y
se cierran en orden inverso al apagar.

En tests se arma GatewayServices a mano con dobles y se pasa a create_app.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from common.config import Settings
from common.db import get_engine, ping

from .mqtt import MeasurementReceiver
from .persistence import MeasurementRepository
from .pipeline import IngestService
from .realtime import NullRealtimePublisher, RedisConnection, RedisRealtimePublisher
from .registry import IdentityCache, IdentityResolver, RegistryClient

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    settings: Settings
    engine: Engine
    repository: MeasurementRepository
    resolver: IdentityResolver
    pipeline: IngestService
    registry: Optional[RegistryClient] = None
    redis: Optional[RedisConnection] = None
    receiver: Optional[MeasurementReceiver] = None

    def start(self) -> None:
        if self.settings.db_ensure_schema:
            self.repository.ensure_schema()
        if self.redis is not None:
            # Fallo inicial no es fatal: el publisher reintenta con backoff.
            self.redis.connect()
        if self.receiver is not None:
            self.receiver.start()

    def close(self) -> None:
        """Drena el ingreso MQTT y cierra los recursos compartidos."""
        if self.receiver is not None:
            self.receiver.stop()
        if self.redis is not None:
            self.redis.disconnect()
        if self.registry is not None:
            self.registry.close()
        self.engine.dispose()
        logger.info("[GATEWAY] Services closed")

    def health(self) -> dict:
        return {
            "db_connected": ping(self.engine),
            "redis_connected": self.redis.is_connected if self.redis is not None else None,
            "mqtt": self.receiver.stats if self.receiver is not None else None,
            "identity_cache": self.resolver.cache.stats,
        }


def build_services(settings: Settings) -> GatewayServices:
    engine = get_engine(settings)
    repository = MeasurementRepository(engine)

    registry = RegistryClient(
        base_url=settings.registry_base_url,
        timeout_seconds=settings.registry_timeout_seconds,
    )
    resolver = IdentityResolver(
        registry,
        IdentityCache(
            ttl_seconds=settings.identity_cache_ttl_seconds,
            max_size=settings.identity_cache_max_size,
        ),
    )

    redis_conn: Optional[RedisConnection] = None
    if settings.realtime_enabled:
        redis_conn = RedisConnection(
            settings.redis_url,
            socket_timeout=settings.realtime_publish_timeout_seconds,
            reconnect_backoff_seconds=settings.realtime_reconnect_backoff_seconds,
        )
        publisher = RedisRealtimePublisher(redis_conn, channel=settings.realtime_channel)
    else:
        logger.info("[GATEWAY] Realtime publishing disabled by REALTIME_ENABLED=false")
        publisher = NullRealtimePublisher()

    pipeline = IngestService(resolver, repository, publisher)

    receiver: Optional[MeasurementReceiver] = None
    if settings.mqtt_enabled:
        receiver = MeasurementReceiver.from_settings(settings, pipeline)
    else:
        logger.info("[GATEWAY] MQTT ingress disabled by MQTT_ENABLED=false")

    return GatewayServices(
        settings=settings,
        engine=engine,
        repository=repository,
        resolver=resolver,
        pipeline=pipeline,
        registry=registry,
        redis=redis_conn,
        receiver=receiver,
    )


def get_services(request: Request) -> GatewayServices:
    return request.app.state.services


def get_pipeline(request: Request) -> IngestService:
    return get_services(request).pipeline
