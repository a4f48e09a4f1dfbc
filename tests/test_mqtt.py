from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

from services.mqtt import MqttConnectionConfig, MQTTService
from services.subscription import Subscription


def _service(handler=None, **cfg):
    client = MagicMock()
    service = MQTTService(
        MqttConnectionConfig(host="broker", port=1884, **cfg),
        handler=handler or MagicMock(),
        client=client,
    )
    return service, client


def _callback_for(client: MagicMock, topic: str):
    for call in client.message_callback_add.call_args_list:
        if call.args[0] == topic:
            return call.args[1]
    raise AssertionError(f"no callback registered for {topic}")


def test_credentials_are_configured() -> None:
    _, client = _service(username="user", password="pass")
    client.username_pw_set.assert_called_once_with("user", "pass")


def test_no_credentials_without_user() -> None:
    _, client = _service()
    client.username_pw_set.assert_not_called()


def test_connect_starts_network_loop() -> None:
    service, client = _service()

    service.connect()

    client.connect.assert_called_once_with("broker", 1884, keepalive=60)
    client.loop_start.assert_called_once()
    assert service.uri == "tcp://broker:1884"


def test_subscribes_registered_topics_on_connect() -> None:
    service, client = _service()
    service.register(
        [
            Subscription(topic="a/#", measurement="a"),
            Subscription(topic="b/+", measurement="b"),
            Subscription(topic="a/#", measurement="a2"),
        ]
    )

    service._on_connect(client, None, {}, SimpleNamespace(is_failure=False), None)

    subscribed = [call.args[0] for call in client.subscribe.call_args_list]
    assert subscribed == ["a/#", "b/+"]
    assert service.topics == ["a/#", "b/+"]


def test_refused_connection_does_not_subscribe() -> None:
    service, client = _service()
    service.register([Subscription(topic="a/#", measurement="a")])

    service._on_connect(client, None, {}, SimpleNamespace(is_failure=True), None)

    client.subscribe.assert_not_called()


def test_messages_are_routed_to_every_subscription_of_a_topic() -> None:
    handler = MagicMock()
    service, client = _service(handler=handler)
    first = Subscription(topic="a/#", measurement="a")
    second = Subscription(topic="a/#", measurement="a2")
    service.register([first, second])
    service._on_connect(client, None, {}, SimpleNamespace(is_failure=False), None)

    callback = _callback_for(client, "a/#")
    callback(client, None, SimpleNamespace(topic="a/b", payload=b"1"))

    assert [call.args for call in handler.call_args_list] == [
        (first, "a/b", b"1"),
        (second, "a/b", b"1"),
    ]


def test_handler_errors_do_not_escape_the_callback() -> None:
    handler = MagicMock(side_effect=[RuntimeError("boom"), None])
    service, client = _service(handler=handler)
    service.register(
        [Subscription(topic="a", measurement="a"), Subscription(topic="a", measurement="b")]
    )
    service._on_connect(client, None, {}, SimpleNamespace(is_failure=False), None)

    _callback_for(client, "a")(client, None, SimpleNamespace(topic="a", payload=b"1"))

    assert handler.call_count == 2


def test_disconnect_unsubscribes_and_clears() -> None:
    service, client = _service()
    client.is_connected.return_value = True
    service.register([Subscription(topic="a/#", measurement="a")])

    service.disconnect()

    client.unsubscribe.assert_called_once_with("a/#")
    client.message_callback_remove.assert_called_once_with("a/#")
    client.disconnect.assert_called_once()
    client.loop_stop.assert_called_once()
    assert service.topics == []


def test_disconnect_while_offline_still_drops_callbacks() -> None:
    service, client = _service()
    client.is_connected.return_value = False
    service.register([Subscription(topic="a/#", measurement="a")])
    service._on_connect(client, None, {}, SimpleNamespace(is_failure=False), None)

    service.disconnect()

    client.message_callback_remove.assert_called_once_with("a/#")
    client.unsubscribe.assert_not_called()
    client.disconnect.assert_not_called()
    client.loop_stop.assert_called_once()


def test_reload_while_offline_routes_only_to_new_subscriptions() -> None:
    handler = MagicMock()
    service, client = _service(handler=handler)
    client.is_connected.return_value = False
    callbacks: dict = {}
    client.message_callback_add.side_effect = callbacks.__setitem__
    client.message_callback_remove.side_effect = lambda topic: callbacks.pop(topic, None)

    old = Subscription(topic="a/#", measurement="old")
    service.register([old])
    service._on_connect(client, None, {}, SimpleNamespace(is_failure=False), None)
    service.disconnect()

    new = Subscription(topic="a/b", measurement="new")
    service.register([new])
    service._on_connect(client, None, {}, SimpleNamespace(is_failure=False), None)
    for callback in list(callbacks.values()):
        callback(client, None, SimpleNamespace(topic="a/b", payload=b"1"))

    assert [call.args[0] for call in handler.call_args_list] == [new]
