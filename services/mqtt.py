"""MQTT broker connection and subscription management."""

from __future__ import annotations

import logging
import socket
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional

import paho.mqtt.client as paho_mqtt

from services.subscription import Subscription
from settings import APP_NAME

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Subscription, str, bytes], Any]


@dataclass(frozen=True)
class MqttConnectionConfig:
    host: str = "localhost"
    port: int = 1883
    username: str = ""
    password: str = ""
    keepalive: int = 60
    qos: int = 0


class MQTTService:
    """Subscribes registered subscriptions and routes messages to a handler.

    Subscribing happens in the connect callback so that subscriptions are
    restored after the client reconnects.
    """

    def __init__(
        self,
        cfg: MqttConnectionConfig,
        handler: MessageHandler,
        client: Optional[Any] = None,
    ) -> None:
        self._cfg = cfg
        self._handler = handler
        self._routes: "OrderedDict[str, List[Subscription]]" = OrderedDict()
        self._lock = Lock()

        if client is None:
            client = paho_mqtt.Client(
                callback_api_version=paho_mqtt.CallbackAPIVersion.VERSION2,
                client_id=f"{APP_NAME}-{socket.gethostname()}",
                clean_session=True,
            )
        self._client = client

        if cfg.username:
            self._client.username_pw_set(cfg.username, cfg.password or None)

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect

    @property
    def uri(self) -> str:
        return f"tcp://{self._cfg.host}:{self._cfg.port}"

    @property
    def topics(self) -> List[str]:
        with self._lock:
            return list(self._routes)

    def register(self, subscriptions: Iterable[Subscription]) -> None:
        """Register subscriptions; they are subscribed once connected."""
        with self._lock:
            for subscription in subscriptions:
                self._routes.setdefault(subscription.topic, []).append(subscription)
            count = sum(len(subs) for subs in self._routes.values())
        logger.info("MQTT registered %d subscriptions", count)

    def connect(self) -> None:
        logger.info("MQTT connecting to %s", self.uri)
        self._client.connect(self._cfg.host, self._cfg.port, keepalive=self._cfg.keepalive)
        self._client.loop_start()

    def disconnect(self) -> None:
        """Unsubscribe, close the connection and forget all subscriptions."""
        connected = self._client.is_connected()
        if connected:
            logger.info("MQTT disconnecting")
        for topic in self.topics:
            # callbacks outlive the connection, so drop them even when offline
            self._client.message_callback_remove(topic)
            if connected:
                logger.info("MQTT unsubscribe", extra={"topic": topic})
                self._client.unsubscribe(topic)
        if connected:
            self._client.disconnect()
        self._client.loop_stop()
        with self._lock:
            self._routes.clear()

    def _subscribe_all(self, client: Any) -> None:
        with self._lock:
            routes: Dict[str, List[Subscription]] = {
                topic: list(subs) for topic, subs in self._routes.items()
            }
        for topic, subs in routes.items():
            logger.info("MQTT subscribe", extra={"topic": topic})
            client.message_callback_add(topic, self._dispatcher(subs))
            client.subscribe(topic, qos=self._cfg.qos)

    def _dispatcher(self, subscriptions: List[Subscription]) -> Callable[[Any, Any, Any], None]:
        def on_message(_client: Any, _userdata: Any, message: Any) -> None:
            for subscription in subscriptions:
                try:
                    self._handler(subscription, message.topic, message.payload)
                except Exception:
                    logger.exception(
                        "MQTT failed to handle message",
                        extra={"topic": message.topic, "subscription": subscription.topic},
                    )

        return on_message

    # ---- paho callbacks ----

    def _on_connect(self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        if getattr(reason_code, "is_failure", False):
            logger.error("MQTT connection refused: %s", reason_code)
            return
        logger.info("MQTT (re-)connected to %s", self.uri)
        self._subscribe_all(client)

    def _on_disconnect(
        self, client: Any, userdata: Any, flags: Any, reason_code: Any = None, properties: Any = None
    ) -> None:
        logger.warning("MQTT connection lost: %s", reason_code)
