"""Fixtures compartidos: BD SQLite en memoria, registry simulado y publisher en memoria."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from common.config import Settings, get_settings
from common.contracts import RealtimeMeasurement
from ingest_gateway.persistence import MeasurementRepository
from ingest_gateway.pipeline import IngestService
from ingest_gateway.registry import IdentityCache, IdentityResolver, RegistryClient

REGISTRY_URL = "http://registry.test"

TENANT_ID = uuid.UUID("6f1c2a4e-8b1d-4c55-9a3e-0d2f6b7c8e91")
DEVICE_ID = uuid.UUID("a2b4c6d8-1e3f-4a5b-8c7d-9e0f1a2b3c4d")
OTHER_DEVICE_ID = uuid.UUID("0c9d8e7f-6a5b-4c3d-9e2f-1a0b9c8d7e6f")

TIMESTAMP = datetime(2026, 1, 31, 8, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# REGISTRY SIMULADO
# =============================================================================

class FakeResponse:
    def __init__(self, status_code: int, body: Any = None):
        self.status_code = status_code
        self._body = body

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        return self._body


def make_registry_session(
    tenants: Dict[str, uuid.UUID],
    devices: Dict[Tuple[uuid.UUID, str], uuid.UUID],
) -> MagicMock:
    """requests.Session falso que responde como el Device Registry."""

    def fake_get(url: str, timeout: Optional[float] = None) -> FakeResponse:
        parts = url[len(REGISTRY_URL):].strip("/").split("/")

        # api/tenants/by-slug/{slug}
        if parts[:3] == ["api", "tenants", "by-slug"] and len(parts) == 4:
            tenant_id = tenants.get(parts[3])
            if tenant_id is None:
                return FakeResponse(404)
            return FakeResponse(200, {"id": str(tenant_id), "name": parts[3].title(), "slug": parts[3]})

        # api/tenants/{tenantId}/devices/by-serial/{serial}
        if len(parts) == 6 and parts[3] == "devices" and parts[4] == "by-serial":
            device_id = devices.get((uuid.UUID(parts[2]), parts[5]))
            if device_id is None:
                return FakeResponse(404)
            return FakeResponse(
                200,
                {
                    "id": str(device_id),
                    "tenantId": parts[2],
                    "roomId": None,
                    "model": "Edge-Sim",
                    "serial": parts[5],
                    "status": "active",
                },
            )

        return FakeResponse(404)

    session = MagicMock()
    session.get.side_effect = fake_get
    return session


class RecordingPublisher:
    """Publisher en memoria; `fail=True` simula Redis caído."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: List[RealtimeMeasurement] = []

    def publish_measurement(self, measurement: RealtimeMeasurement) -> bool:
        if self.fail:
            return False
        self.published.append(measurement)
        return True


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings(monkeypatch) -> Settings:
    monkeypatch.setenv("INGEST_ENV_FILE", "/nonexistent/.env")
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite://")
    monkeypatch.setenv("REGISTRY_BASE_URL", REGISTRY_URL)
    monkeypatch.setenv("MQTT_ENABLED", "false")
    monkeypatch.setenv("REALTIME_ENABLED", "false")
    return get_settings()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite+pysqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield eng
    eng.dispose()


@pytest.fixture
def repository(engine) -> MeasurementRepository:
    repo = MeasurementRepository(engine)
    repo.ensure_schema()
    return repo


@pytest.fixture
def registry_session() -> MagicMock:
    return make_registry_session(
        tenants={"innovia": TENANT_ID},
        devices={(TENANT_ID, "dev-101"): DEVICE_ID, (TENANT_ID, "dev-102"): OTHER_DEVICE_ID},
    )


@pytest.fixture
def registry_client(registry_session) -> RegistryClient:
    return RegistryClient(REGISTRY_URL, timeout_seconds=1.0, session=registry_session)


@pytest.fixture
def resolver(registry_client) -> IdentityResolver:
    return IdentityResolver(registry_client, IdentityCache())


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def pipeline(resolver, repository, publisher) -> IngestService:
    return IngestService(resolver, repository, publisher)


@pytest.fixture
def batch_payload() -> Dict[str, Any]:
    """Batch del simulador (mismo JSON por HTTP y MQTT)."""
    return {
        "deviceId": "dev-101",
        "apiKey": "dev-101-key",
        "timestamp": TIMESTAMP.isoformat(),
        "metrics": [{"type": "co2", "value": 950, "unit": "ppm"}],
    }
