"""Shared state container for the Selene relay."""
from __future__ import annotations

import logging
import queue
import time
from typing import Any, TYPE_CHECKING

from .directory import RetainedCache, SessionDirectory
from .topics import BrokerEndpoint, parse_broker_url

if TYPE_CHECKING:
    from .controller import BridgeController
    from .mqtt_manager import MqttManager
    from .multiplexer import SerialMultiplexer

logger = logging.getLogger(__name__)


def new_stats() -> dict[str, Any]:
    return {
        'start_time': time.time(),
        'frames_rx': 0,
        'frames_tx': 0,
        'frames_invalid': 0,
        'frames_rx_prev': 0,
        'messages_rx': 0,
        'messages_invalid': 0,
        'bytes_rx': 0,
        'publish_failures': 0,
        'sessions_opened': 0,
        'sessions_closed': 0,
        'last_stats_log': time.time(),
    }


class RelayState:
    """Everything the relay mutates at runtime, owned by one process."""

    def __init__(self, config: dict[str, Any], debug: bool = False) -> None:
        self.config = config
        self.debug = debug

        general = config.get('general', {})
        self.namespace: str = general.get('namespace', 'Se')
        self.console_enabled: bool = general.get('console', False)
        self.stats_interval: int = general.get('stats_interval', 300)

        broker_cfg = config.get('broker', {})
        self.broker_url: str = broker_cfg.get('url', 'mqtt://localhost:1883')
        self.broker: BrokerEndpoint = parse_broker_url(self.broker_url)
        self.keepalive: int = broker_cfg.get('keepalive', 60)
        self.client_id_prefix: str = broker_cfg.get('client_id_prefix', 'selene_')
        self.shutdown_timeout: float = broker_cfg.get('shutdown_timeout', 5.0)
        self.tls_verify: bool = broker_cfg.get('tls_verify', True)

        # Core bookkeeping, only touched from the controller loop
        self.directory = SessionDirectory()
        self.cache = RetainedCache()

        # Inbound events from serial and MQTT threads
        self.events: queue.Queue[Any] = queue.Queue()

        # Collaborators (set by relay.__init__)
        self.mqtt_manager: MqttManager | None = None
        self.multiplexer: SerialMultiplexer | None = None
        self.controller: BridgeController | None = None

        self.client_version: str = ""
        self.should_exit: bool = False

        self.stats: dict[str, Any] = new_stats()

        logger.debug(f"Relay state initialised (namespace={self.namespace}, broker={self.broker.url})")
