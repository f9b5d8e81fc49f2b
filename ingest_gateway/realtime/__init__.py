"""Realtime layer - Publicación de mediciones hacia el hub."""

from .connection import RedisConnection
from .publisher import MeasurementPublisher, NullRealtimePublisher, RedisRealtimePublisher

__all__ = [
    "MeasurementPublisher",
    "NullRealtimePublisher",
    "RedisConnection",
    "RedisRealtimePublisher",
]
