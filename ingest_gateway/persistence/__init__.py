"""Persistence layer - Almacenamiento de mediciones."""

from .models import measurements, metadata
from .repository import MeasurementRepository, MeasurementRow, StoredMeasurement

__all__ = [
    "MeasurementRepository",
    "MeasurementRow",
    "StoredMeasurement",
    "measurements",
    "metadata",
]
