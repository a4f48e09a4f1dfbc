"""Asynchronous delivery of measurements to the InfluxDB HTTP write endpoint."""

from __future__ import annotations

import logging
import queue
import threading
from functools import lru_cache
from typing import Optional

import httpx

from app.schemas import SinkStats
from models.errors import DeliveryError, ValidationError
from models.measurement import Measurement
from settings import get_settings

logger = logging.getLogger(__name__)

_STOP = object()


class InfluxService:
    """Bounded send queue drained by a single worker thread.

    Each measurement gets exactly one delivery attempt; failures are logged
    and the measurement is dropped.
    """

    def __init__(
        self,
        base_url: str,
        default_db: str,
        user: str = "",
        password: str = "",
        queue_size: int = 32,
        submit_timeout: Optional[float] = 5.0,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.default_db = default_db
        self.submit_timeout = submit_timeout
        self._auth = (user, password) if user else None
        self._client = client or httpx.Client(timeout=timeout)
        self._queue: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._sent = 0
        self._failed = 0
        self._dropped = 0
        logger.info("InfluxDB URL is %s", self.write_url)

    @property
    def write_url(self) -> str:
        return f"{self.base_url}/write"

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        """Start the delivery worker; a second call is a no-op."""
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._work, name="influx-delivery", daemon=True
            )
            self._worker.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Send what is already queued, then stop the worker."""
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker is None:
            return
        self._queue.put(_STOP)
        worker.join(timeout)

    def close(self) -> None:
        self.stop()
        self._client.close()

    def submit(self, measurement: Measurement) -> bool:
        """Queue ``measurement`` for delivery.

        Blocks up to ``submit_timeout`` seconds while the queue is full and
        drops the measurement afterwards. Returns whether it was queued.
        """
        if not self.running:
            self._count(dropped=1)
            logger.warning(
                "InfluxDB worker not running, dropping measurement",
                extra={"measurement": measurement.name},
            )
            return False
        try:
            self._queue.put(measurement, timeout=self.submit_timeout)
        except queue.Full:
            self._count(dropped=1)
            logger.warning(
                "InfluxDB send queue full, dropping measurement",
                extra={"measurement": measurement.name, "queue_size": self._queue.maxsize},
            )
            return False
        return True

    def send(self, measurement: Measurement) -> None:
        """Write a single measurement synchronously."""
        measurement.validate()
        database = measurement.database or self.default_db
        line = measurement.format()
        response = self._client.post(
            self.write_url,
            params={"db": database},
            content=(line + "\n").encode("utf-8"),
            auth=self._auth,
        )
        if response.status_code not in (200, 204):
            raise DeliveryError(
                f"got HTTP status {response.status_code} for DB={database!r}, req={line!r}"
            )

    def stats(self) -> SinkStats:
        with self._lock:
            return SinkStats(
                queued=self._queue.qsize(),
                sent=self._sent,
                failed=self._failed,
                dropped=self._dropped,
            )

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)  # type: ignore[arg-type]
            finally:
                self._queue.task_done()

    def _deliver(self, measurement: Measurement) -> None:
        try:
            self.send(measurement)
        except (httpx.HTTPError, DeliveryError, ValidationError) as exc:
            self._count(failed=1)
            logger.error(
                "InfluxDB request error: %s",
                exc,
                extra={
                    "measurement": measurement.name,
                    "database": measurement.database or self.default_db,
                },
            )
            return
        self._count(sent=1)

    def _count(self, sent: int = 0, failed: int = 0, dropped: int = 0) -> None:
        with self._lock:
            self._sent += sent
            self._failed += failed
            self._dropped += dropped


@lru_cache
def build_default_sink() -> InfluxService:
    settings = get_settings()
    return InfluxService(
        base_url=f"http://{settings.influx_host}:{settings.influx_port}",
        default_db=settings.influx_db,
        user=settings.influx_user,
        password=settings.influx_pass,
        queue_size=settings.influx_queue_size,
        submit_timeout=settings.influx_submit_timeout,
        timeout=settings.influx_timeout,
    )
