"""Interactive debug console running beside the relay."""
from __future__ import annotations

import code
import logging
import threading
from typing import Any, TYPE_CHECKING

from . import codec

if TYPE_CHECKING:
    from .state import RelayState

logger = logging.getLogger(__name__)

BANNER = "selene-relay debug console: state, config, controller, multiplexer, mqtt_manager, codec"


def console_namespace(state: RelayState) -> dict[str, Any]:
    return {
        'state': state,
        'config': state.config,
        'controller': state.controller,
        'multiplexer': state.multiplexer,
        'mqtt_manager': state.mqtt_manager,
        'codec': codec,
        'logging': logging,
    }


def start_console(state: RelayState) -> threading.Thread:
    """Start the console on a daemon thread; leaving it does not stop the relay."""
    console = code.InteractiveConsole(locals=console_namespace(state))

    def _interact() -> None:
        try:
            console.interact(banner=BANNER, exitmsg="Debug console closed; relay keeps running")
        except SystemExit:
            pass
        logger.info("Debug console exited")

    thread = threading.Thread(target=_interact, daemon=True, name="Debug-Console")
    thread.start()
    logger.info("Debug console started")
    return thread
