"""Resolución de (tenant_slug, device_serial) → (tenant_id, device_id).

Mantiene un caché en memoria thread-safe para hot paths O(1): lo usan a la
vez los workers MQTT y los requests HTTP.

El registry no publica invalidaciones: con ttl_seconds=0 una identidad
cacheada no expira nunca (un dispositivo reasignado a otro tenant sigue
resolviendo al valor viejo hasta reiniciar). IDENTITY_CACHE_TTL_SECONDS
acota esa obsolescencia.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Tuple
from uuid import UUID

from ..errors import DeviceNotFoundError, TenantNotFoundError
from .client import RegistryClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_CACHE_SIZE = 10000


@dataclass(frozen=True)
class ResolvedIdentity:
    tenant_id: UUID
    device_id: UUID


def cache_key(tenant_slug: str, device_serial: str) -> str:
    return f"{tenant_slug}:{device_serial}"


class IdentityCache:
    """Caché LRU con TTL opcional, protegido por lock."""

    def __init__(
        self,
        ttl_seconds: float = 0,
        max_size: int = DEFAULT_MAX_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = float(ttl_seconds)
        self._max_size = max(1, int(max_size))
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[ResolvedIdentity, Optional[float]]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[ResolvedIdentity]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            identity, expires_at = entry
            if expires_at is not None and expires_at <= self._clock():
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return identity

    def put(self, key: str, identity: ResolvedIdentity) -> None:
        expires_at = self._clock() + self._ttl if self._ttl > 0 else None
        with self._lock:
            self._entries[key] = (identity, expires_at)
            self._entries.move_to_end(key)
            # Evitar memory leak: eliminar entradas más antiguas si excede límite
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
            }


class IdentityResolver:
    """Resuelve identidades contra el registry con caché.

    Sin reintentos internos: el llamador decide si reintenta el batch.
    """

    def __init__(self, client: RegistryClient, cache: Optional[IdentityCache] = None):
        self._client = client
        self._cache = cache if cache is not None else IdentityCache()

    @property
    def cache(self) -> IdentityCache:
        return self._cache

    def resolve(self, tenant_slug: str, device_serial: str) -> ResolvedIdentity:
        """Devuelve la identidad o lanza TenantNotFoundError / DeviceNotFoundError.

        RegistryUnavailableError se propaga si el registry no responde a tiempo.
        """
        key = cache_key(tenant_slug, device_serial)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        tenant = self._client.get_tenant_by_slug(tenant_slug)
        if tenant is None:
            logger.info("[RESOLVER] Tenant not found slug=%s", tenant_slug)
            raise TenantNotFoundError(tenant_slug)

        device = self._client.get_device_by_serial(tenant.id, device_serial)
        if device is None:
            logger.info(
                "[RESOLVER] Device not found serial=%s tenant=%s", device_serial, tenant_slug
            )
            raise DeviceNotFoundError(tenant_slug, device_serial)

        identity = ResolvedIdentity(tenant_id=tenant.id, device_id=device.id)
        self._cache.put(key, identity)
        logger.debug(
            "[RESOLVER] Resolved %s -> tenant_id=%s device_id=%s",
            key,
            identity.tenant_id,
            identity.device_id,
        )
        return identity
