"""Tabla de mediciones: (id, time, tenant_id, device_id, type, value)."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Uuid,
)

metadata = MetaData()

measurements = Table(
    "measurements",
    metadata,
    # BigInteger en Postgres, INTEGER en SQLite (necesario para autoincrement).
    Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
    Column("time", DateTime(timezone=True), nullable=False),
    Column("tenant_id", Uuid, nullable=False),
    Column("device_id", Uuid, nullable=False),
    Column("type", String(64), nullable=False),
    Column("value", Float, nullable=False),
    Index("ix_measurements_device_time", "device_id", "time"),
)
