"""Selene serial bus to MQTT relay package."""
from __future__ import annotations

from typing import Any

from .state import RelayState
from .mqtt_manager import MqttManager
from .multiplexer import SerialMultiplexer
from .controller import BridgeController
from . import runner


class SeleneRelay:
    """Facade: creates RelayState, wires up the multiplexer, MQTT manager and controller."""

    def __init__(self, config: dict[str, Any], debug: bool = False, version: str = "0.0.0") -> None:
        self.state = RelayState(config, debug)
        self.state.client_version = runner.load_client_version(version)
        self.state.mqtt_manager = MqttManager(self.state)
        self.state.multiplexer = SerialMultiplexer(self.state)
        self.state.controller = BridgeController(self.state, self.state.multiplexer, self.state.mqtt_manager)

    def run(self) -> None:
        runner.run(self.state)

    def handle_signal(self, signum: int, frame: Any) -> None:
        runner.handle_signal(self.state, signum, frame)
