"""Main run loop and startup orchestration."""
from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, TYPE_CHECKING

from config_loader import log_config_sources

from . import background
from .console import start_console

if TYPE_CHECKING:
    from .state import RelayState

logger = logging.getLogger(__name__)


def load_client_version(version: str) -> str:
    """Load client version from provided version string, optionally append git hash."""
    try:
        script_dir = os.path.dirname(os.path.abspath(__file__))
        parent_dir = os.path.dirname(script_dir)  # relay/ -> project root
        version_file = os.path.join(parent_dir, '.version_info')
        if os.path.exists(version_file):
            with open(version_file, 'r') as f:
                version_data = json.load(f)
                git_hash = version_data.get('git_hash', '')
                if git_hash and git_hash != 'unknown':
                    return f"selene-relay/{version}-{git_hash}"
    except (OSError, ValueError) as e:
        logger.debug(f"Could not load version info: {e}")
    return f"selene-relay/{version}"


def handle_signal(state: RelayState, signum: int, frame: Any) -> None:
    """Signal handler to trigger graceful shutdown."""
    logger.info(f"Received signal {signum}, shutting down...")
    state.should_exit = True


def run(state: RelayState) -> None:
    """Start the serial side, then run the controller loop until asked to exit."""
    log_config_sources(state.config)
    logger.info(f"Client version: {state.client_version}")

    if state.console_enabled:
        start_console(state)

    stats_thread = threading.Thread(
        target=background.stats_logging_loop,
        args=(state,),
        daemon=True,
        name="Stats-Logger"
    )
    stats_thread.start()
    logger.debug("[STATS] Started statistics logging thread")

    state.multiplexer.start()

    try:
        state.controller.run()
    except KeyboardInterrupt:
        logger.info("Exiting...")
    except Exception as e:
        logger.exception(f"Unhandled error in main loop: {e}")
    finally:
        _cleanup(state, stats_thread)


def _cleanup(state: RelayState, stats_thread: threading.Thread) -> None:
    """Detach every device and close every node session before exiting."""
    logger.info("Cleaning up...")
    state.should_exit = True

    # Queues a DeviceDetached per link so the controller runs the normal teardown
    state.multiplexer.stop()
    state.controller.shutdown(timeout=state.shutdown_timeout)

    if stats_thread.is_alive():
        stats_thread.join(timeout=0.1)

    logger.info(
        f"Sessions opened/closed: {state.stats['sessions_opened']}/{state.stats['sessions_closed']}"
    )
