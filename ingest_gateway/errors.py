"""Errores del pipeline de ingesta.

Jerarquía:
    IngestError
    ├── BatchValidationError        (400, solo HTTP)
    ├── IdentityResolutionError
    │   ├── IdentityNotFoundError   (404)
    │   │   ├── TenantNotFoundError
    │   │   └── DeviceNotFoundError
    │   └── RegistryUnavailableError (también TransportError, 503)
    ├── TransportError              (503)
    ├── PersistenceError            (503)
    └── DecodeError                 (MQTT: se descarta el mensaje)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class FieldError:
    field: str
    reason: str

    def to_dict(self) -> dict:
        return {"field": self.field, "reason": self.reason}


class IngestError(Exception):
    """Base de todos los errores de ingesta."""


class BatchValidationError(IngestError):
    def __init__(self, errors: Sequence[FieldError]):
        self.errors: List[FieldError] = list(errors)
        fields = ", ".join(e.field for e in self.errors)
        super().__init__(f"Invalid measurement batch: {fields}")


class IdentityResolutionError(IngestError):
    """No se pudo resolver (tenant_id, device_id)."""


class IdentityNotFoundError(IdentityResolutionError):
    pass


class TenantNotFoundError(IdentityNotFoundError):
    def __init__(self, tenant_slug: str):
        self.tenant_slug = tenant_slug
        super().__init__(f"Tenant slug '{tenant_slug}' not found")


class DeviceNotFoundError(IdentityNotFoundError):
    def __init__(self, tenant_slug: str, device_serial: str):
        self.tenant_slug = tenant_slug
        self.device_serial = device_serial
        super().__init__(
            f"Device serial '{device_serial}' not found in tenant '{tenant_slug}'"
        )


class TransportError(IngestError):
    """Registry, broker o canal realtime inalcanzable."""


class RegistryUnavailableError(IdentityResolutionError, TransportError):
    pass


class PersistenceError(IngestError):
    pass


class DecodeError(IngestError):
    pass
