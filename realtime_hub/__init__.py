"""Realtime hub: tenant-grouped websocket fan-out of live measurements."""
