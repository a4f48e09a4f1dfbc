"""Wires subscriptions, the MQTT transport and the InfluxDB sink together."""

from __future__ import annotations

import logging
from functools import lru_cache
from threading import Lock
from typing import List, Union

from app.schemas import BridgeStats, PreviewResult
from datastore.subscriptions import SubscriptionStore, build_default_store
from services.mqtt import MqttConnectionConfig, MQTTService
from services.processor import MessageProcessor, preview
from services.subscription import Subscription
from settings import get_settings
from storage.influx import InfluxService, build_default_sink

logger = logging.getLogger(__name__)


class Bridge:
    """Lifecycle owner for one MQTT to InfluxDB bridge."""

    def __init__(
        self,
        store: SubscriptionStore,
        sink: InfluxService,
        processor: MessageProcessor,
        mqtt: MQTTService,
    ) -> None:
        self.store = store
        self.sink = sink
        self.processor = processor
        self.mqtt = mqtt
        self._lock = Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._start(self.store.load())

    def stop(self) -> None:
        with self._lock:
            self._stop()

    def reload(self) -> List[Subscription]:
        """Re-read subscription definitions and restart with them.

        Definitions are read before anything is stopped, so a broken file
        leaves the running bridge untouched.
        """
        with self._lock:
            subscriptions = self.store.load()
            logger.info("Reloading %d subscriptions", len(subscriptions))
            self._stop()
            self._start(subscriptions)
            return subscriptions

    def preview(self, topic: str, payload: Union[bytes, str]) -> List[PreviewResult]:
        return preview(self.store.list(), topic, payload)

    def stats(self) -> BridgeStats:
        return BridgeStats(
            subscriptions=len(self.store.list()),
            processor=self.processor.stats(),
            sink=self.sink.stats(),
        )

    def _start(self, subscriptions: List[Subscription]) -> None:
        self.mqtt.register(subscriptions)
        self.sink.start()
        try:
            self.mqtt.connect()
        except Exception:
            # undo the partial startup
            self.mqtt.disconnect()
            self.sink.stop()
            raise
        self._running = True

    def _stop(self) -> None:
        if not self._running:
            return
        self.mqtt.disconnect()
        self.sink.stop()
        self._running = False


@lru_cache
def build_default_bridge() -> Bridge:
    """Factory that wires the bridge from environment settings."""
    settings = get_settings()
    sink = build_default_sink()
    processor = MessageProcessor(sink)
    mqtt = MQTTService(
        MqttConnectionConfig(
            host=settings.mqtt_host,
            port=settings.mqtt_port,
            username=settings.mqtt_user,
            password=settings.mqtt_pass,
        ),
        handler=processor.handle,
    )
    return Bridge(store=build_default_store(), sink=sink, processor=processor, mqtt=mqtt)
