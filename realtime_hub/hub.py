"""TelemetryHub: conexiones websocket agrupadas por tenant.

Cada cliente conectado puede unirse a uno o más grupos `tenant:<slug>`
(joinTenant). publishMeasurement reparte la medición solo a los miembros
del grupo de su tenantSlug. La membresía vive lo que vive la conexión:
no hay "leave" explícito, disconnect la limpia.

Todo corre en el event loop de la app: los métodos sync no tienen puntos
de suspensión y publish_measurement trabaja sobre una copia del grupo.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, Protocol, Set

from common.contracts import RealtimeMeasurement

logger = logging.getLogger(__name__)

PUSH_EVENT = "measurementReceived"


class ClientConnection(Protocol):
    async def send_json(self, data: Any) -> None: ...


def group_name(tenant_slug: str) -> str:
    return f"tenant:{tenant_slug}"


class TelemetryHub:
    def __init__(self, send_timeout_seconds: float = 2.0):
        self._send_timeout = float(send_timeout_seconds)
        self._connections: Dict[str, ClientConnection] = {}
        self._groups: Dict[str, Set[str]] = defaultdict(set)
        self._memberships: Dict[str, Set[str]] = defaultdict(set)

    def connect(self, connection: ClientConnection) -> str:
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = connection
        logger.info("[HUB] Client connected id=%s total=%d", connection_id, len(self._connections))
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)
        for group in self._memberships.pop(connection_id, set()):
            members = self._groups.get(group)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._groups[group]
        logger.info("[HUB] Client disconnected id=%s total=%d", connection_id, len(self._connections))

    def join_tenant(self, connection_id: str, tenant_slug: str) -> None:
        if connection_id not in self._connections:
            raise KeyError(f"Unknown connection '{connection_id}'")
        group = group_name(tenant_slug)
        self._groups[group].add(connection_id)
        self._memberships[connection_id].add(group)
        logger.info("[HUB] id=%s joined %s", connection_id, group)

    def members(self, tenant_slug: str) -> Set[str]:
        return set(self._groups.get(group_name(tenant_slug), ()))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def publish_measurement(self, measurement: RealtimeMeasurement) -> int:
        """Envía measurementReceived al grupo del tenant. Devuelve entregas OK."""
        member_ids = self.members(measurement.tenant_slug)
        if not member_ids:
            return 0

        message = {"type": PUSH_EVENT, "payload": measurement.to_push_dict()}
        targets = [
            (cid, self._connections[cid]) for cid in member_ids if cid in self._connections
        ]
        results = await asyncio.gather(*(self._send(cid, conn, message) for cid, conn in targets))
        delivered = sum(1 for ok in results if ok)
        logger.debug(
            "[HUB] %s type=%s delivered=%d/%d",
            group_name(measurement.tenant_slug),
            measurement.type,
            delivered,
            len(targets),
        )
        return delivered

    async def _send(self, connection_id: str, connection: ClientConnection, message: dict) -> bool:
        try:
            await asyncio.wait_for(connection.send_json(message), timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("[HUB] Send timeout id=%s", connection_id)
        except Exception as e:
            # Suscriptor caído: el endpoint lo desconecta al cerrar su loop.
            logger.warning("[HUB] Send failed id=%s err=%s", connection_id, type(e).__name__)
        return False
