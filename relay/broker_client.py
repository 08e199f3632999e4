"""Per-node MQTT broker session backed by paho-mqtt."""
from __future__ import annotations

import logging
import ssl
from abc import ABC, abstractmethod
from typing import Any, Callable

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

CALLBACK_NAMES = ('on_connect', 'on_connect_fail', 'on_disconnect', 'on_message')


class BrokerClient(ABC):
    """One node's broker session; outcomes arrive through the paho callbacks."""

    @abstractmethod
    def connect(self, server: str, port: int, keepalive: int = 60) -> None:
        """Start connecting without blocking; reported through on_connect or on_connect_fail."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Flush queued packets and close; reported through on_disconnect."""
        ...

    @abstractmethod
    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> bool: ...

    @abstractmethod
    def subscribe(self, topic: str, qos: int = 0) -> None: ...

    @abstractmethod
    def loop_start(self) -> None: ...

    @abstractmethod
    def loop_stop(self) -> None: ...

    @abstractmethod
    def clear_callbacks(self) -> None:
        """Detach every callback so a closed session can no longer queue events."""
        ...


class PahoBrokerClient(BrokerClient):
    def __init__(
        self,
        client_id: str,
        transport: str = 'tcp',
        lwt_topic: str | None = None,
        lwt_payload: bytes | None = None,
        lwt_qos: int = 0,
        lwt_retain: bool = True,
        tls_enabled: bool = False,
        tls_verify: bool = True,
        ws_path: str = '/',
        min_reconnect_delay: int = 1,
        max_reconnect_delay: int = 120,
        on_connect: Callable[..., Any] | None = None,
        on_connect_fail: Callable[..., Any] | None = None,
        on_disconnect: Callable[..., Any] | None = None,
        on_message: Callable[..., Any] | None = None,
        userdata: dict[str, Any] | None = None,
    ) -> None:
        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=True,
            transport=transport,
            userdata=userdata,
        )

        if lwt_topic:
            self._client.will_set(lwt_topic, lwt_payload, qos=lwt_qos, retain=lwt_retain)

        callbacks = {
            'on_connect': on_connect,
            'on_connect_fail': on_connect_fail,
            'on_disconnect': on_disconnect,
            'on_message': on_message,
        }
        for name, callback in callbacks.items():
            if callback:
                setattr(self._client, name, callback)

        if tls_enabled:
            self._client.tls_set(cert_reqs=ssl.CERT_REQUIRED if tls_verify else ssl.CERT_NONE)
            self._client.tls_insecure_set(not tls_verify)

        if transport == "websockets":
            self._client.ws_set_options(path=ws_path, headers=None)

        # paho retries on its own network thread with exponential backoff
        self._client.reconnect_delay_set(min_delay=min_reconnect_delay, max_delay=max_reconnect_delay)

    def connect(self, server: str, port: int, keepalive: int = 60) -> None:
        self._client.connect_async(server, port, keepalive=keepalive)

    def disconnect(self) -> None:
        self._client.disconnect()

    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> bool:
        info = self._client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"Publish to {topic} rejected: {mqtt.error_string(info.rc)}")
            return False
        return True

    def subscribe(self, topic: str, qos: int = 0) -> None:
        rc, _mid = self._client.subscribe(topic, qos=qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise Exception(f"Subscribe failed: {mqtt.error_string(rc)}")

    def loop_start(self) -> None:
        self._client.loop_start()

    def loop_stop(self) -> None:
        self._client.loop_stop()

    def clear_callbacks(self) -> None:
        for name in CALLBACK_NAMES:
            setattr(self._client, name, None)
