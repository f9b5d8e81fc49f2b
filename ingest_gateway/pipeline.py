"""Pipeline de ingesta compartido por HTTP y MQTT.

Flujo por batch (se corta en el primer fallo):
1. Resolver identidad (tenant_slug, deviceId) → (tenant_id, device_id)
2. Persistir una fila por métrica en una sola transacción
3. Publicar una RealtimeMeasurement por métrica al grupo del tenant

Persistir antes de publicar: un suscriptor nunca ve datos que no estén
guardados. Un batch se considera ingerido una vez persistido; los fallos
de publicación se cuentan y se loguean pero no lo invalidan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from common.contracts import RealtimeMeasurement

from . import metrics
from .errors import IdentityNotFoundError, PersistenceError, RegistryUnavailableError
from .persistence import MeasurementRepository, MeasurementRow
from .realtime import MeasurementPublisher
from .registry import IdentityResolver, ResolvedIdentity
from .schemas import KNOWN_METRIC_TYPES, MeasurementBatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestOutcome:
    tenant_slug: str
    device_serial: str
    identity: ResolvedIdentity
    rows_persisted: int
    broadcast: int
    broadcast_failed: int


class IngestService:
    """Orquesta resolución, persistencia y difusión de un batch.

    Sin estado por request: una sola instancia atiende en paralelo a los
    workers MQTT y a los requests HTTP.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        repository: MeasurementRepository,
        publisher: MeasurementPublisher,
    ):
        self._resolver = resolver
        self._repository = repository
        self._publisher = publisher

    def process(self, tenant_slug: str, batch: MeasurementBatch, source: str = "http") -> IngestOutcome:
        """Procesa un batch completo.

        Raises:
            IdentityResolutionError: tenant/dispositivo desconocido o registry caído
            PersistenceError: la BD rechazó o no pudo guardar el batch
        """
        try:
            identity = self._resolver.resolve(tenant_slug, batch.device_id)
        except IdentityNotFoundError:
            metrics.BATCHES_PROCESSED.labels(source=source, outcome="not_found").inc()
            raise
        except RegistryUnavailableError:
            metrics.BATCHES_PROCESSED.labels(source=source, outcome="registry_unavailable").inc()
            raise

        rows = self._build_rows(batch, identity)
        try:
            persisted = self._repository.insert_batch(rows)
        except PersistenceError:
            metrics.BATCHES_PROCESSED.labels(source=source, outcome="persistence_error").inc()
            raise
        metrics.ROWS_PERSISTED.inc(persisted)

        broadcast, failed = self._broadcast(tenant_slug, batch, identity)

        metrics.BATCHES_PROCESSED.labels(source=source, outcome="ingested").inc()
        logger.info(
            "[PIPELINE] Ingested %d metrics for serial %s in tenant %s at %s (source=%s)",
            persisted,
            batch.device_id,
            tenant_slug,
            batch.timestamp.isoformat(),
            source,
        )
        return IngestOutcome(
            tenant_slug=tenant_slug,
            device_serial=batch.device_id,
            identity=identity,
            rows_persisted=persisted,
            broadcast=broadcast,
            broadcast_failed=failed,
        )

    def _build_rows(self, batch: MeasurementBatch, identity: ResolvedIdentity) -> List[MeasurementRow]:
        rows = []
        for metric in batch.metrics:
            if metric.type.lower() not in KNOWN_METRIC_TYPES:
                logger.debug("[PIPELINE] Unrecognized metric type=%s serial=%s", metric.type, batch.device_id)
            rows.append(
                MeasurementRow(
                    time=batch.timestamp,
                    tenant_id=identity.tenant_id,
                    device_id=identity.device_id,
                    type=metric.type,
                    value=metric.value,
                )
            )
        return rows

    def _broadcast(self, tenant_slug: str, batch: MeasurementBatch, identity: ResolvedIdentity) -> tuple[int, int]:
        sent = 0
        failed = 0
        for metric in batch.metrics:
            measurement = RealtimeMeasurement(
                tenant_slug=tenant_slug,
                device_id=identity.device_id,
                type=metric.type,
                value=metric.value,
                unit=metric.unit,
                time=batch.timestamp,
            )
            try:
                ok = self._publisher.publish_measurement(measurement)
            except Exception:
                logger.exception("[PIPELINE] Realtime publisher raised tenant=%s", tenant_slug)
                ok = False
            if ok:
                sent += 1
            else:
                failed += 1

        if failed:
            logger.warning(
                "[PIPELINE] Realtime publish failed for %d/%d metrics serial=%s tenant=%s",
                failed,
                failed + sent,
                batch.device_id,
                tenant_slug,
            )
        return sent, failed
