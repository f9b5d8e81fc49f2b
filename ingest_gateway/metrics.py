"""Métricas Prometheus del gateway."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

BATCHES_PROCESSED = Counter(
    "ingest_batches_processed_total",
    "Measurement batches handled by the ingestion pipeline",
    ["source", "outcome"],  # source: http|mqtt, outcome: ingested|not_found|registry_unavailable|persistence_error
)

ROWS_PERSISTED = Counter(
    "ingest_rows_persisted_total",
    "Measurement rows written to storage",
)

REALTIME_PUBLISHED = Counter(
    "ingest_realtime_publish_total",
    "Realtime measurement publish attempts",
    ["outcome"],  # published|failed|unavailable
)

MQTT_MESSAGES = Counter(
    "ingest_mqtt_messages_total",
    "MQTT messages received by the pub/sub ingress",
    ["outcome"],  # dispatched|bad_topic|decode_error|invalid|dropped
)


def render_latest() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
