"""Glue between the MQTT transport and the InfluxDB delivery queue."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Iterable, Optional, Protocol, Union

from app.schemas import PreviewResult, ProcessorStats
from models.errors import PipelineError
from models.measurement import Measurement
from services.subscription import Subscription

logger = logging.getLogger(__name__)

Payload = Union[bytes, str]


class MeasurementSink(Protocol):
    def submit(self, measurement: Measurement) -> bool: ...


class MessageProcessor:
    """Reads measurements from incoming messages and hands them to a sink.

    A failing message is logged and skipped; it never stops processing of
    the messages that follow.
    """

    def __init__(self, sink: MeasurementSink) -> None:
        self.sink = sink
        self._received = 0
        self._submitted = 0
        self._failed = 0
        self._stats_lock = Lock()

    def handle(self, subscription: Subscription, topic: str, payload: Payload) -> Optional[Measurement]:
        """Process one message for ``subscription``; returns the submitted measurement."""
        self._count(received=1)
        text = decode_payload(payload)
        try:
            measurement = subscription.read(topic, text)
            measurement.validate()
        except PipelineError as exc:
            self._count(failed=1)
            logger.warning(
                "Failed to handle message",
                extra={
                    "topic": topic,
                    "subscription": subscription.topic,
                    "reason": str(exc),
                },
            )
            return None

        if not self.sink.submit(measurement):
            self._count(failed=1)
            return None
        self._count(submitted=1)
        logger.debug(
            "Submitted measurement",
            extra={"topic": topic, "measurement": measurement.name},
        )
        return measurement

    def stats(self) -> ProcessorStats:
        with self._stats_lock:
            return ProcessorStats(
                received=self._received,
                submitted=self._submitted,
                failed=self._failed,
            )

    def _count(self, received: int = 0, submitted: int = 0, failed: int = 0) -> None:
        with self._stats_lock:
            self._received += received
            self._submitted += submitted
            self._failed += failed


def preview(subscriptions: Iterable[Subscription], topic: str, payload: Payload) -> list[PreviewResult]:
    """Run a message through every matching subscription without submitting it."""
    text = decode_payload(payload)
    results: list[PreviewResult] = []
    for subscription in subscriptions:
        if not subscription.matches(topic):
            continue
        try:
            measurement = subscription.read(topic, text)
            measurement.validate()
        except PipelineError as exc:
            results.append(PreviewResult(subscription=subscription.topic, error=str(exc)))
            continue
        results.append(PreviewResult(subscription=subscription.topic, line=measurement.format()))
    return results


def decode_payload(payload: Payload) -> str:
    if isinstance(payload, str):
        return payload
    return payload.decode("utf-8", errors="replace")
