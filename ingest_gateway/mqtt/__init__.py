"""MQTT layer - Ingreso pub/sub de batches de medición."""

from .async_processor import AsyncBatchProcessor
from .client import MQTTClient
from .decoder import decode_batch
from .message_handler import MeasurementMessageHandler
from .receiver import MeasurementReceiver
from .topics import TOPIC_PATTERN, MeasurementTopic, parse_topic

__all__ = [
    "AsyncBatchProcessor",
    "MQTTClient",
    "MeasurementMessageHandler",
    "MeasurementReceiver",
    "MeasurementTopic",
    "TOPIC_PATTERN",
    "decode_batch",
    "parse_topic",
]
