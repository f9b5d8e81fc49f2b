"""Ingest gateway: HTTP + MQTT ingestion, identity resolution, persistence and realtime publishing."""
