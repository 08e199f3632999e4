"""Per-node MQTT session factory.

Every node address gets its own broker client. Paho invokes callbacks on its
network thread, so they only translate into events for the controller's queue.
"""
from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, TYPE_CHECKING

from . import topics
from .broker_client import BrokerClient, PahoBrokerClient
from .events import SessionClosed, SessionConnected, SessionMessage
from .mqtt_publish import format_payload

if TYPE_CHECKING:
    from .state import RelayState

logger = logging.getLogger(__name__)


class MqttManager:
    """Creates broker sessions and forwards their callbacks as events."""

    def __init__(self, state: RelayState, client_factory: Callable[..., BrokerClient] = PahoBrokerClient) -> None:
        self.state = state
        self._client_factory = client_factory
        self._session_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def create_session(self, address: int) -> tuple[int, BrokerClient] | None:
        """Create a client for a node and start connecting it.

        The will marks the node offline if this process dies without tearing
        the session down.
        """
        state = self.state
        broker = state.broker
        label = topics.node_prefix(state.namespace, address)
        session_id = next(self._session_ids)

        client_id = topics.sanitize_client_id(f"{state.namespace}_{address}", state.client_id_prefix)

        try:
            broker_client = self._client_factory(
                client_id=client_id,
                transport=broker.transport,
                lwt_topic=topics.connection_topic(state.namespace, address),
                lwt_payload=topics.OFFLINE,
                lwt_qos=0,
                lwt_retain=True,
                tls_enabled=broker.tls,
                tls_verify=state.tls_verify,
                ws_path=broker.path,
                on_connect=self.on_mqtt_connect,
                on_connect_fail=self.on_mqtt_connect_fail,
                on_disconnect=self.on_mqtt_disconnect,
                on_message=self.on_mqtt_message,
                userdata={'address': address, 'session_id': session_id},
            )
            broker_client.connect(broker.host, broker.port, keepalive=state.keepalive)
            broker_client.loop_start()
        except Exception as e:
            logger.error(f"[{label}] Failed to start broker session: {e}")
            return None

        logger.info(f"Connecting {label} to {broker.url}...")
        return session_id, broker_client

    # ------------------------------------------------------------------
    # MQTT callbacks (paho network thread)
    # ------------------------------------------------------------------

    def on_mqtt_connect(self, client: Any, userdata: dict[str, Any] | None, flags: Any, rc: Any, properties: Any = None) -> None:
        address, session_id = _session_key(userdata)
        if address is None:
            return
        success = rc == 0
        self.state.events.put(SessionConnected(address, session_id, success, str(rc)))

    def on_mqtt_connect_fail(self, client: Any, userdata: dict[str, Any] | None) -> None:
        """Socket-level failure before any CONNACK; paho keeps retrying afterwards."""
        address, session_id = _session_key(userdata)
        if address is None:
            return
        self.state.events.put(SessionConnected(address, session_id, False, "connection attempt failed"))

    def on_mqtt_disconnect(self, client: Any, userdata: dict[str, Any] | None, disconnect_flags: Any, reason_code: Any, properties: Any = None) -> None:
        address, session_id = _session_key(userdata)
        if address is None:
            return
        self.state.events.put(SessionClosed(address, session_id, str(reason_code)))

    def on_mqtt_message(self, client: Any, userdata: dict[str, Any] | None, msg: Any) -> None:
        address, session_id = _session_key(userdata)
        if address is None:
            return
        payload = bytes(msg.payload)
        logger.debug(f"MQTT received: {msg.topic} = {format_payload(payload)}")
        self.state.events.put(SessionMessage(address, session_id, msg.topic, payload))


def _session_key(userdata: dict[str, Any] | None) -> tuple[int | None, int]:
    if not userdata or 'address' not in userdata:
        logger.error("MQTT callback fired without session userdata")
        return None, 0
    return userdata['address'], userdata.get('session_id', 0)
