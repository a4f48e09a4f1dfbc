from __future__ import annotations

import threading
from typing import List

import httpx
import pytest

from models.errors import DeliveryError, InvalidMeasurementName
from models.measurement import Measurement
from storage.influx import InfluxService


def _measurement(name: str = "temp", database: str = "") -> Measurement:
    measurement = Measurement(database=database, name=name, timestamp=42)
    measurement.tag("room", "kitchen")
    measurement.set_value("21.5")
    return measurement


class RecordingTransport:
    def __init__(self, status_code: int = 204) -> None:
        self.status_code = status_code
        self.requests: List[httpx.Request] = []
        self.received = threading.Event()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.received.set()
        return httpx.Response(self.status_code)


def _service(transport: RecordingTransport, **kwargs) -> InfluxService:
    client = httpx.Client(transport=httpx.MockTransport(transport))
    return InfluxService(
        base_url="http://influx:8086/",
        default_db="default",
        client=client,
        **kwargs,
    )


def test_send_posts_line_protocol_to_default_database() -> None:
    transport = RecordingTransport()
    service = _service(transport, user="admin", password="secret")

    service.send(_measurement())

    request = transport.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/write"
    assert request.url.params["db"] == "default"
    assert request.content == b"temp,room=kitchen value=21.5 42\n"
    assert request.headers["authorization"].startswith("Basic ")


def test_send_uses_measurement_database_and_no_auth_without_user() -> None:
    transport = RecordingTransport(status_code=200)
    service = _service(transport)

    service.send(_measurement(database="weather"))

    request = transport.requests[0]
    assert request.url.params["db"] == "weather"
    assert "authorization" not in request.headers


def test_send_raises_on_error_status() -> None:
    service = _service(RecordingTransport(status_code=400))

    with pytest.raises(DeliveryError) as excinfo:
        service.send(_measurement())
    assert "400" in str(excinfo.value)


def test_send_validates_before_posting() -> None:
    transport = RecordingTransport()
    service = _service(transport)

    with pytest.raises(InvalidMeasurementName):
        service.send(_measurement(name="m & m"))
    assert transport.requests == []


def test_worker_delivers_submitted_measurements() -> None:
    transport = RecordingTransport()
    service = _service(transport)
    service.start()
    try:
        assert service.submit(_measurement()) is True
        assert transport.received.wait(timeout=5.0)
    finally:
        service.stop(timeout=5.0)

    stats = service.stats()
    assert stats.sent == 1
    assert stats.failed == 0
    assert service.running is False


def test_worker_logs_and_drops_failed_delivery(caplog) -> None:
    transport = RecordingTransport(status_code=500)
    service = _service(transport)
    service.start()
    try:
        service.submit(_measurement())
        service.submit(_measurement())
    finally:
        service.stop(timeout=5.0)

    assert len(transport.requests) == 2
    assert service.stats().failed == 2
    assert any("InfluxDB request error" in record.getMessage() for record in caplog.records)


def test_worker_survives_transport_errors() -> None:
    def failing(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = InfluxService(
        base_url="http://influx:8086",
        default_db="default",
        client=httpx.Client(transport=httpx.MockTransport(failing)),
    )
    service.start()
    try:
        service.submit(_measurement())
    finally:
        service.stop(timeout=5.0)

    assert service.stats().failed == 1


def test_submit_drops_when_not_running() -> None:
    service = _service(RecordingTransport())

    assert service.submit(_measurement()) is False
    assert service.stats().dropped == 1


def test_submit_drops_when_queue_is_full() -> None:
    release = threading.Event()
    started = threading.Event()

    def slow(request: httpx.Request) -> httpx.Response:
        started.set()
        release.wait(timeout=5.0)
        return httpx.Response(204)

    service = InfluxService(
        base_url="http://influx:8086",
        default_db="default",
        queue_size=1,
        submit_timeout=0.05,
        client=httpx.Client(transport=httpx.MockTransport(slow)),
    )
    service.start()
    try:
        assert service.submit(_measurement()) is True
        assert started.wait(timeout=5.0)
        assert service.submit(_measurement()) is True
        assert service.submit(_measurement()) is False
    finally:
        release.set()
        service.stop(timeout=5.0)

    stats = service.stats()
    assert stats.dropped == 1
    assert stats.sent == 2
