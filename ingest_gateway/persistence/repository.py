from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError
from .models import measurements, metadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeasurementRow:
    time: datetime
    tenant_id: UUID
    device_id: UUID
    type: str
    value: float

    def to_params(self) -> dict:
        return {
            "time": self.time,
            "tenant_id": self.tenant_id,
            "device_id": self.device_id,
            "type": self.type,
            "value": float(self.value),
        }


@dataclass(frozen=True)
class StoredMeasurement:
    id: int
    time: datetime
    tenant_id: UUID
    device_id: UUID
    type: str
    value: float


class MeasurementRepository:
    """Append de filas de medición y consultas de diagnóstico."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def ensure_schema(self) -> None:
        """Crea la tabla si no existe (conveniencia para desarrollo)."""
        try:
            metadata.create_all(self._engine)
            logger.info("[DB] Schema ready (measurements)")
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create schema: {type(e).__name__}") from e

    def insert_batch(self, rows: Sequence[MeasurementRow]) -> int:
        """Inserta todas las filas en una sola transacción.

        O se insertan todas o ninguna; cualquier error de BD se traduce a
        PersistenceError después del rollback.
        """
        if not rows:
            return 0

        try:
            with self._engine.begin() as conn:
                conn.execute(measurements.insert(), [r.to_params() for r in rows])
        except SQLAlchemyError as e:
            logger.error(
                "[DB] Batch insert failed rows=%d device_id=%s err=%s",
                len(rows),
                rows[0].device_id,
                type(e).__name__,
            )
            raise PersistenceError(f"Could not persist batch: {type(e).__name__}") from e

        return len(rows)

    def count_for_device(self, device_id: UUID) -> int:
        stmt = select(func.count()).select_from(measurements).where(
            measurements.c.device_id == device_id
        )
        try:
            with self._engine.connect() as conn:
                return int(conn.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not count measurements: {type(e).__name__}") from e

    def latest_for_device(self, device_id: UUID, limit: int = 5) -> List[StoredMeasurement]:
        stmt = (
            select(measurements)
            .where(measurements.c.device_id == device_id)
            .order_by(measurements.c.time.desc(), measurements.c.id.desc())
            .limit(limit)
        )
        try:
            with self._engine.connect() as conn:
                result = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read measurements: {type(e).__name__}") from e

        return [
            StoredMeasurement(
                id=int(row["id"]),
                time=row["time"],
                tenant_id=row["tenant_id"],
                device_id=row["device_id"],
                type=str(row["type"]),
                value=float(row["value"]),
            )
            for row in result
        ]
