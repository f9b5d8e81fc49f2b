"""Registry layer - Resolución de identidades contra el Device Registry."""

from .client import DeviceRecord, RegistryClient, TenantRecord
from .resolver import IdentityCache, IdentityResolver, ResolvedIdentity, cache_key

__all__ = [
    "DeviceRecord",
    "IdentityCache",
    "IdentityResolver",
    "RegistryClient",
    "ResolvedIdentity",
    "TenantRecord",
    "cache_key",
]
