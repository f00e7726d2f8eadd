from __future__ import annotations

import threading
from collections import deque

import httpx

from facewatch.util.logging import get_logger

from .alerts import Alert

logger = get_logger(__name__)


class AlertDispatcher:
    """Best-effort delivery of alerts to the collector.

    ``submit`` never blocks the caller: alerts are queued for a fixed pool of
    delivery threads. When the queue is full the oldest pending alert is
    dropped. Each alert is posted at most once; failures are logged and
    counted, never retried.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        max_pending: int = 256,
        workers: int = 4,
        token: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.max_pending = max(1, max_pending)
        self.worker_count = max(1, workers)
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._client = client or httpx.Client(timeout=timeout, headers=headers)
        self._owns_client = client is None
        self._pending: deque[Alert] = deque()
        self._cond = threading.Condition()
        self._threads: list[threading.Thread] = []
        self._closed = False
        self._in_flight = 0
        self._sent = 0
        self._failed = 0
        self._dropped = 0

    def start(self) -> None:
        with self._cond:
            if self._closed or self._threads:
                return
            for index in range(self.worker_count):
                thread = threading.Thread(target=self._run_worker, name=f"alert-dispatch-{index}", daemon=True)
                thread.start()
                self._threads.append(thread)

    def submit(self, alert: Alert) -> bool:
        """Queue an alert; returns False when the dispatcher is closed."""
        self.start()
        with self._cond:
            if self._closed:
                return False
            if len(self._pending) >= self.max_pending:
                dropped = self._pending.popleft()
                self._dropped += 1
                logger.warning("alert queue full (%d), dropping oldest alert for camera %s", self.max_pending, dropped.camera_id)
            self._pending.append(alert)
            self._cond.notify_all()
        return True

    def deliver(self, alert: Alert) -> bool:
        try:
            response = self._client.post(self.endpoint, json=alert.to_payload())
        except httpx.HTTPError as exc:
            self._record(False)
            logger.warning("failed to send alert for camera %s: %s", alert.camera_id, exc)
            return False
        if response.status_code != httpx.codes.CREATED:
            self._record(False)
            logger.warning("failed to send alert for camera %s, status: %d", alert.camera_id, response.status_code)
            return False
        self._record(True)
        return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: not self._pending and self._in_flight == 0, timeout=timeout)

    def stats(self) -> dict[str, int]:
        with self._cond:
            return {
                "pending": len(self._pending),
                "in_flight": self._in_flight,
                "sent": self._sent,
                "failed": self._failed,
                "dropped": self._dropped,
            }

    def close(self, timeout: float = 2.0) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            discarded = len(self._pending)
            self._pending.clear()
            self._cond.notify_all()
            threads = list(self._threads)
        if discarded:
            logger.info("alert dispatcher closed with %d undelivered alerts", discarded)
        for thread in threads:
            thread.join(timeout=timeout)
        if self._owns_client:
            self._client.close()

    def _record(self, delivered: bool) -> None:
        with self._cond:
            if delivered:
                self._sent += 1
            else:
                self._failed += 1

    def _run_worker(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._closed or bool(self._pending))
                if self._closed:
                    return
                alert = self._pending.popleft()
                self._in_flight += 1
            try:
                self.deliver(alert)
            except Exception:
                logger.exception("unexpected alert delivery error: %s", alert.camera_id)
            finally:
                with self._cond:
                    self._in_flight -= 1
                    self._cond.notify_all()
