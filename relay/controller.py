"""Bridge controller: the single consumer of relay events.

All changes to the session directory and the retained cache happen here, one
event at a time. Broker and serial operations only start work; their outcome
comes back later as another event.

Per node the session goes through::

    ABSENT -> CONNECTING -> ACTIVE -> CLOSING -> ABSENT

A session is opened by the first frame from a node and closed when the link
that node was first heard on detaches.
"""
from __future__ import annotations

import logging
import queue
import time
from typing import Any, Callable, TYPE_CHECKING

from . import codec
from . import topics
from .directory import NodeSession, SessionState
from .events import (
    DeviceAttached,
    DeviceDetached,
    FrameReceived,
    LinkAdded,
    LinkRemoved,
    SessionClosed,
    SessionConnected,
    SessionMessage,
    TransportError,
)
from .mqtt_publish import safe_publish, safe_subscribe

if TYPE_CHECKING:
    from .mqtt_manager import MqttManager
    from .multiplexer import SerialMultiplexer
    from .state import RelayState

logger = logging.getLogger(__name__)


class BridgeController:
    def __init__(self, state: RelayState, multiplexer: SerialMultiplexer, mqtt_manager: MqttManager) -> None:
        self.state = state
        self.multiplexer = multiplexer
        self.mqtt_manager = mqtt_manager
        self._shutting_down = False
        self._handlers: dict[type, Callable[[Any], None]] = {
            DeviceAttached: self.on_device_attached,
            DeviceDetached: self.on_device_detached,
            FrameReceived: self.on_frame_received,
            LinkAdded: self.on_link_added,
            LinkRemoved: self.on_link_removed,
            TransportError: self.on_transport_error,
            SessionConnected: self.on_session_connected,
            SessionMessage: self.on_session_message,
            SessionClosed: self.on_session_closed,
        }

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def run(self, poll_interval: float = 0.5) -> None:
        """Process events until state.should_exit is set."""
        while not self.state.should_exit:
            self.process_next(timeout=poll_interval)

    def process_next(self, timeout: float | None = 0) -> bool:
        """Handle one queued event. Returns False if none arrived within timeout."""
        try:
            if timeout == 0:
                event = self.state.events.get_nowait()
            else:
                event = self.state.events.get(timeout=timeout)
        except queue.Empty:
            return False
        self.dispatch(event)
        return True

    def process_pending(self) -> int:
        """Handle everything currently queued, without waiting."""
        handled = 0
        while self.process_next(timeout=0):
            handled += 1
        return handled

    def dispatch(self, event: Any) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning(f"Ignoring unknown event {event!r}")
            return
        try:
            handler(event)
        except Exception as e:
            logger.exception(f"Error handling {type(event).__name__}: {e}")

    # ------------------------------------------------------------------
    # Serial side
    # ------------------------------------------------------------------

    def on_device_attached(self, event: DeviceAttached) -> None:
        logger.info(f"Connected device {event.link}")
        if not self.state.directory.add_link(event.link):
            logger.warning(f"Device {event.link} attached twice; keeping its {len(self.state.directory.addresses_for(event.link))} known node(s)")

        discovery_frame = codec.encode_discovery()
        if self.multiplexer.send(event.link, discovery_frame):
            self.state.stats['frames_tx'] += 1
        logger.debug(f"Sent discovery to {event.link}: {discovery_frame!r}")

    def on_frame_received(self, event: FrameReceived) -> None:
        state = self.state
        logger.debug(f"Received from {event.link}: {event.data!r}")
        state.stats['bytes_rx'] += len(event.data)

        decoded = codec.decode_frame(event.data, state.namespace)
        if decoded is None:
            state.stats['frames_invalid'] += 1
            logger.debug(f"Dropped invalid frame from {event.link}")
            return
        state.stats['frames_rx'] += 1

        session = state.directory.get(decoded.address)

        if session is None:
            if not state.directory.has_link(event.link):
                logger.warning(f"Frame for {state.namespace}/{decoded.address} from unknown device {event.link}, dropping")
                return
            if self._shutting_down:
                logger.debug(f"Shutting down, not opening a session for {state.namespace}/{decoded.address}")
                return
            state.cache.update(decoded.address, decoded.topic, decoded.payload)
            if self._open_session(decoded.address, event.link) is None:
                # Retried on the node's next frame
                state.cache.drop(decoded.address)
            return

        if session.state is SessionState.CLOSING or session.teardown_pending:
            session.backlog[decoded.topic] = decoded.payload
            session.backlog_link = event.link
            logger.debug(f"{state.namespace}/{decoded.address} is being torn down, holding {decoded.topic} for its next session")
            return

        state.cache.update(decoded.address, decoded.topic, decoded.payload)
        if session.state is SessionState.ACTIVE:
            safe_publish(state, session, decoded.topic, decoded.payload, retain=True, qos=0)

    def on_device_detached(self, event: DeviceDetached) -> None:
        logger.info(f"Disconnected device {event.link}")
        addresses = self.state.directory.remove_link(event.link)
        if addresses is None:
            logger.warning(f"Detach for unknown device {event.link}, ignoring")
            return

        for address in sorted(addresses):
            session = self.state.directory.get(address)
            if session is None:
                continue
            if session.state is SessionState.CONNECTING:
                logger.debug(f"{self.state.namespace}/{address} still connecting, teardown deferred")
                session.teardown_pending = True
            elif session.state is SessionState.ACTIVE:
                self._teardown(session)

    def on_link_added(self, event: LinkAdded) -> None:
        logger.info(f"Added new serial device: {event.link}")

    def on_link_removed(self, event: LinkRemoved) -> None:
        logger.info(f"Removed serial device: {event.link}")

    def on_transport_error(self, event: TransportError) -> None:
        logger.error(f"Error event from {event.context}: {event.detail}")

    # ------------------------------------------------------------------
    # Broker side
    # ------------------------------------------------------------------

    def on_session_connected(self, event: SessionConnected) -> None:
        session = self._current_session(event.address, event.session_id)
        if session is None:
            return
        label = topics.node_prefix(self.state.namespace, event.address)

        if not event.success:
            logger.error(f"[{label}] Connection failed: {event.reason}")
            if session.teardown_pending and session.state is SessionState.CONNECTING:
                # Its link is gone, so there is nothing left to set up
                self._abandon(session)
            return

        if session.state is SessionState.CLOSING:
            logger.debug(f"[{label}] Connected while closing, ignoring")
            return

        if session.state is SessionState.ACTIVE:
            logger.info(f"[{label}] Reconnected to {self.state.broker.url}")
        else:
            logger.info(f"Connected {label} to {self.state.broker.url}")
            session.state = SessionState.ACTIVE
        session.connected = True

        self._announce(session)

        if session.teardown_pending:
            self._teardown(session)

    def on_session_message(self, event: SessionMessage) -> None:
        state = self.state
        session = self._current_session(event.address, event.session_id)
        if session is None:
            return
        if session.state is not SessionState.ACTIVE:
            logger.debug(f"Dropping {event.topic}: session is {session.state.value}")
            return

        state.stats['messages_rx'] += 1
        frame = codec.decode_topic_message(event.topic, event.payload, state.namespace)
        if frame is None:
            state.stats['messages_invalid'] += 1
            logger.debug(f"Packet from MQTT was invalid: {event.topic}")
            return

        # Nodes filter on their own address, so every link gets every command
        sent = self.multiplexer.broadcast(frame)
        state.stats['frames_tx'] += sent
        logger.debug(f"Broadcast {frame!r} to {sent} device(s)")

    def on_session_closed(self, event: SessionClosed) -> None:
        session = self._current_session(event.address, event.session_id)
        if session is None:
            return
        label = topics.node_prefix(self.state.namespace, event.address)

        if session.state is SessionState.CLOSING:
            self._finalize(session)
            return

        if session.teardown_pending and session.state is SessionState.CONNECTING:
            logger.info(f"[{label}] Connection attempt ended after its device detached")
            self._abandon(session)
            return

        session.connected = False
        logger.warning(f"[{label}] Disconnected from {self.state.broker.url} ({event.reason}), waiting for reconnect")

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, timeout: float = 5.0) -> None:
        """Tear down every session, waiting up to timeout for close acknowledgements."""
        self._shutting_down = True
        deadline = time.monotonic() + timeout

        self.process_pending()

        for session in self.state.directory.sessions():
            if session.state is SessionState.ACTIVE:
                self._teardown(session)
            elif session.state is SessionState.CONNECTING:
                self._abandon(session)

        while len(self.state.directory) and time.monotonic() < deadline:
            self.process_next(timeout=0.1)

        for session in self.state.directory.sessions():
            logger.warning(f"{self.state.namespace}/{session.address} did not close in time, forcing")
            self._finalize(session)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _current_session(self, address: int, session_id: int) -> NodeSession | None:
        session = self.state.directory.get(address)
        if session is None or session.session_id != session_id:
            logger.debug(f"Ignoring event from stale session {session_id} of {self.state.namespace}/{address}")
            return None
        return session

    def _open_session(self, address: int, link: str) -> NodeSession | None:
        created = self.mqtt_manager.create_session(address)
        if created is None:
            return None
        session_id, client = created
        session = NodeSession(address=address, link=link, session_id=session_id, client=client)
        self.state.directory.register(session)
        self.state.stats['sessions_opened'] += 1
        return session

    def _announce(self, session: NodeSession) -> None:
        """Online marker, command subscription, then replay of the cached state."""
        state = self.state
        safe_publish(state, session, topics.connection_topic(state.namespace, session.address), topics.ONLINE, retain=True, qos=0)
        safe_subscribe(state, session, topics.command_subscription(state.namespace, session.address))
        for topic, payload in state.cache.snapshot(session.address).items():
            safe_publish(state, session, topic, payload, retain=True, qos=0)

    def _teardown(self, session: NodeSession) -> None:
        """Offline marker, then a flushing disconnect. Bookkeeping goes once the close is confirmed."""
        state = self.state
        session.state = SessionState.CLOSING
        session.teardown_pending = False
        safe_publish(state, session, topics.connection_topic(state.namespace, session.address), topics.OFFLINE, retain=True, qos=0)

        was_connected = session.connected
        try:
            session.client.disconnect()
        except Exception as e:
            logger.error(f"[{topics.node_prefix(state.namespace, session.address)}] Error disconnecting: {e}")
            was_connected = False

        if not was_connected:
            # No broker connection, so no close confirmation will arrive
            self._finalize(session)

    def _abandon(self, session: NodeSession) -> None:
        """Close a session that never came online; the will covers it if the broker saw it at all."""
        session.state = SessionState.CLOSING
        session.teardown_pending = False
        try:
            session.client.disconnect()
        except Exception as e:
            logger.debug(f"Error disconnecting {self.state.namespace}/{session.address}: {e}")
        self._finalize(session)

    def _finalize(self, session: NodeSession) -> None:
        state = self.state
        label = topics.node_prefix(state.namespace, session.address)
        try:
            session.client.loop_stop()
        except Exception as e:
            logger.debug(f"[{label}] Error stopping network loop: {e}")
        session.client.clear_callbacks()

        state.directory.remove(session.address)
        state.cache.drop(session.address)
        state.stats['sessions_closed'] += 1
        logger.info(f"Disconnected {label} from {state.broker.url}")

        link = session.backlog_link
        if session.backlog and link and state.directory.has_link(link) and not self._shutting_down:
            logger.info(f"{label} reappeared on {link} while closing, reopening")
            for topic, payload in session.backlog.items():
                state.cache.update(session.address, topic, payload)
            if self._open_session(session.address, link) is None:
                state.cache.drop(session.address)
