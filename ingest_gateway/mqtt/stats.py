"""Estadísticas del receptor MQTT."""

from __future__ import annotations

import threading
import time


class ReceiverStats:
    """Contadores del handler; el lock permite leerlos desde /health."""

    def __init__(self):
        self.received = 0
        self.dispatched = 0
        self.bad_topic = 0
        self.decode_errors = 0
        self.invalid = 0
        self.dropped = 0
        self.last_message_at: float = 0
        self._lock = threading.Lock()

    def incr(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)
            if name == "received":
                self.last_message_at = time.time()

    def __str__(self) -> str:
        d = self.to_dict()
        return (
            f"Stats: received={d['received']} dispatched={d['dispatched']} "
            f"bad_topic={d['bad_topic']} decode_errors={d['decode_errors']} "
            f"invalid={d['invalid']} dropped={d['dropped']}"
        )

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "received": self.received,
                "dispatched": self.dispatched,
                "bad_topic": self.bad_topic,
                "decode_errors": self.decode_errors,
                "invalid": self.invalid,
                "dropped": self.dropped,
                "last_message_at": self.last_message_at,
            }
