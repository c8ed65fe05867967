"""Background worker draining the delivery queue into durable notifications."""

from __future__ import annotations

import logging
import threading

from ..domain.contracts import DeliveryQueue, NotificationSink

logger = logging.getLogger(__name__)


class NotificationDeliveryWorker:
    """Drain queued notifications in batches on a daemon thread.

    Example:
        >>> worker = NotificationDeliveryWorker(queue, repository)
        >>> worker.start()
        >>> # ... broadcasts flow into the notifications table ...
        >>> worker.stop()
    """

    DEFAULT_BATCH_SIZE = 100
    DEFAULT_POLL_INTERVAL_SECONDS = 1.0

    def __init__(
        self,
        queue: DeliveryQueue,
        sink: NotificationSink,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._queue = queue
        self._sink = sink
        self._batch_size = batch_size
        self._poll_interval = poll_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> int:
        """Drain one batch and persist it; return the number of notifications written.

        A failed write loses that batch: live delivery is best effort and the
        broadcast itself stays queryable. A failed drain is logged and retried
        on the next poll; it never stops the worker.
        """
        try:
            batch = self._queue.drain(self._batch_size)
        except Exception:
            logger.exception("failed to drain the delivery queue")
            return 0
        if not batch:
            return 0
        try:
            return self._sink.insert_many(batch)
        except Exception:
            logger.exception("failed to persist %d notifications", len(batch))
            return 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("NotificationDeliveryWorker already running")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="notification-delivery",
            daemon=True,
        )
        self._thread.start()
        logger.info("notification delivery worker started")

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the worker to stop and wait for it; safe when not running."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("notification delivery worker stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            written = self.run_once()
            if written < self._batch_size:
                self._stop_event.wait(self._poll_interval)
