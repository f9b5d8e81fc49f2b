"""Async processor: decouples the paho callback from batch processing.

The paho network loop thread only enqueues (tenant_slug, batch) jobs;
worker threads run the pipeline (registry call, DB write, realtime
publish) in parallel. A slow or failing batch never stalls delivery of
the next MQTT message.

The queue is bounded: when full, the batch is dropped and logged (the
broker gives at-least-once, not exactly-once).
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import Counter
from typing import Callable, List, Tuple

from ..schemas import MeasurementBatch

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4
_POLL_SECONDS = 0.5

Job = Tuple[str, MeasurementBatch]
ProcessFn = Callable[[str, MeasurementBatch], object]


class AsyncBatchProcessor:
    """Cola acotada + N workers alrededor de `process(tenant_slug, batch)`.

    submit() nunca bloquea; stop(drain=True) espera a que los batches
    encolados y en vuelo terminen antes de volver.
    """

    def __init__(
        self,
        process: ProcessFn,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
    ):
        self._process = process
        self._jobs: "queue.Queue[Job]" = queue.Queue(maxsize=max_queue_size)
        self._worker_count = max(1, num_workers)
        self._threads: List[threading.Thread] = []
        self._shutdown = threading.Event()
        self._accepting = False
        self._counts: Counter = Counter()
        self._counts_lock = threading.Lock()

    def _count(self, name: str) -> None:
        with self._counts_lock:
            self._counts[name] += 1

    def start(self) -> None:
        if self._threads:
            return
        self._shutdown.clear()
        self._threads = [
            threading.Thread(target=self._run, args=(n,), name=f"ingest-worker-{n}", daemon=True)
            for n in range(self._worker_count)
        ]
        for thread in self._threads:
            thread.start()
        self._accepting = True
        logger.info("[MQTT_WORKERS] %d workers up, queue capacity %d", self._worker_count, self._jobs.maxsize)

    def stop(self, drain: bool = True) -> None:
        """Deja de aceptar batches; con drain=True procesa lo pendiente primero."""
        self._accepting = False
        if drain and self._threads:
            self._jobs.join()
        self._shutdown.set()
        for thread in self._threads:
            thread.join(timeout=5.0)
        self._threads = []
        logger.info("[MQTT_WORKERS] Stopped %s", self.metrics)

    def submit(self, tenant_slug: str, batch: MeasurementBatch) -> bool:
        """Encola un batch. False si el procesador está parado o la cola llena."""
        reason = None
        if not self._accepting:
            reason = "not accepting"
        else:
            try:
                self._jobs.put_nowait((tenant_slug, batch))
            except queue.Full:
                reason = "queue full"

        if reason is not None:
            self._count("dropped")
            logger.warning(
                "[MQTT_WORKERS] Dropped batch (%s) serial=%s tenant=%s",
                reason, batch.device_id, tenant_slug,
            )
            return False

        self._count("enqueued")
        return True

    def _run(self, worker_no: int) -> None:
        while not self._shutdown.is_set():
            try:
                tenant_slug, batch = self._jobs.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            try:
                self._process(tenant_slug, batch)
                self._count("processed")
            except Exception as e:
                # Un batch fallido no afecta a los siguientes.
                self._count("errors")
                logger.error(
                    "[MQTT_WORKERS] worker=%d serial=%s tenant=%s failed: %s: %s",
                    worker_no, batch.device_id, tenant_slug, type(e).__name__, e,
                )
            finally:
                self._jobs.task_done()

    @property
    def metrics(self) -> dict:
        with self._counts_lock:
            counts = dict(self._counts)
        return {
            "queue_depth": self._jobs.qsize(),
            "queue_max": self._jobs.maxsize,
            "enqueued": counts.get("enqueued", 0),
            "dropped": counts.get("dropped", 0),
            "processed": counts.get("processed", 0),
            "errors": counts.get("errors", 0),
        }
