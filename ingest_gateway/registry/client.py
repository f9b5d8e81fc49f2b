"""Cliente HTTP del Device Registry.

Endpoints consumidos:
- GET {base}/api/tenants/by-slug/{slug}
- GET {base}/api/tenants/{tenantId}/devices/by-serial/{serial}

404 se traduce a None; cualquier otro fallo (timeout, conexión, 5xx,
JSON inválido) a RegistryUnavailableError.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote
from uuid import UUID

import requests

from ..errors import RegistryUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantRecord:
    id: UUID
    name: str
    slug: str


@dataclass(frozen=True)
class DeviceRecord:
    id: UUID
    tenant_id: UUID
    model: Optional[str]
    serial: str
    status: Optional[str]


def _field(data: dict, name: str) -> Any:
    """Lee un campo aceptando camelCase o PascalCase."""
    if name in data:
        return data[name]
    return data.get(name[:1].upper() + name[1:])


class RegistryClient:
    """Cliente de larga vida; la sesión reutiliza conexiones y reconecta sola."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = float(timeout_seconds)
        self._session = session or requests.Session()
        self._calls = 0
        self._calls_lock = threading.Lock()

    @property
    def calls(self) -> int:
        """Cantidad de requests emitidos al registry."""
        return self._calls

    def get_tenant_by_slug(self, slug: str) -> Optional[TenantRecord]:
        data = self._get_json(f"/api/tenants/by-slug/{quote(slug, safe='')}")
        if data is None:
            return None
        try:
            return TenantRecord(
                id=UUID(str(_field(data, "id"))),
                name=str(_field(data, "name") or ""),
                slug=str(_field(data, "slug") or slug),
            )
        except (TypeError, ValueError) as e:
            raise RegistryUnavailableError(f"Malformed tenant record: {e}") from e

    def get_device_by_serial(self, tenant_id: UUID, serial: str) -> Optional[DeviceRecord]:
        data = self._get_json(
            f"/api/tenants/{tenant_id}/devices/by-serial/{quote(serial, safe='')}"
        )
        if data is None:
            return None
        try:
            return DeviceRecord(
                id=UUID(str(_field(data, "id"))),
                tenant_id=UUID(str(_field(data, "tenantId") or tenant_id)),
                model=_field(data, "model"),
                serial=str(_field(data, "serial") or serial),
                status=_field(data, "status"),
            )
        except (TypeError, ValueError) as e:
            raise RegistryUnavailableError(f"Malformed device record: {e}") from e

    def _get_json(self, path: str) -> Optional[dict]:
        url = f"{self._base_url}{path}"
        with self._calls_lock:
            self._calls += 1
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.Timeout as e:
            logger.warning("[REGISTRY] Timeout after %.1fs url=%s", self._timeout, url)
            raise RegistryUnavailableError(f"Registry timeout: {url}") from e
        except requests.RequestException as e:
            logger.warning("[REGISTRY] Request failed url=%s err=%s", url, type(e).__name__)
            raise RegistryUnavailableError(f"Registry unreachable: {e}") from e

        if response.status_code == 404:
            return None
        if not response.ok:
            logger.warning("[REGISTRY] Unexpected status=%d url=%s", response.status_code, url)
            raise RegistryUnavailableError(
                f"Registry returned HTTP {response.status_code} for {url}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryUnavailableError(f"Registry returned invalid JSON for {url}") from e
        # El registry responde 200 con cuerpo null cuando no encuentra nada.
        if not data:
            return None
        if not isinstance(data, dict):
            raise RegistryUnavailableError(f"Registry returned unexpected payload for {url}")
        return data

    def close(self) -> None:
        self._session.close()
