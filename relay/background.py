"""Background statistics logging."""
from __future__ import annotations

import logging
import time
from time import sleep
from typing import TYPE_CHECKING

from .directory import SessionState

if TYPE_CHECKING:
    from .state import RelayState

logger = logging.getLogger(__name__)


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_bytes(count: int) -> str:
    if count < 1024:
        return f"{count}B"
    elif count < 1024 * 1024:
        return f"{count / 1024:.1f}KB"
    elif count < 1024 * 1024 * 1024:
        return f"{count / (1024 * 1024):.1f}MB"
    return f"{count / (1024 * 1024 * 1024):.2f}GB"


def log_stats(state: RelayState) -> str:
    """Log one service summary line and roll the per-interval counters."""
    stats = state.stats
    now = time.time()

    time_elapsed = now - stats['last_stats_log']
    frames_delta = stats['frames_rx'] - stats['frames_rx_prev']
    frames_per_min = (frames_delta / time_elapsed) * 60 if time_elapsed > 0 else 0
    stats['frames_rx_prev'] = stats['frames_rx']

    counts = state.directory.count_by_state()
    links = len(state.directory.links())

    line = (
        f"[SERVICE] Uptime: {format_uptime(now - stats['start_time'])} | "
        f"Frames RX/TX: {stats['frames_rx']}/{stats['frames_tx']} ({frames_per_min:.1f}/min) | "
        f"Invalid: {stats['frames_invalid']} frames, {stats['messages_invalid']} messages | "
        f"RX bytes: {format_bytes(stats['bytes_rx'])} | "
        f"Devices: {links} | "
        f"Sessions: {counts[SessionState.ACTIVE]} active, {counts[SessionState.CONNECTING]} connecting, "
        f"{counts[SessionState.CLOSING]} closing | "
        f"Failures: {stats['publish_failures']}"
    )
    logger.info(line)

    stats['last_stats_log'] = now
    return line


def stats_logging_loop(state: RelayState) -> None:
    """Log statistics every stats_interval seconds."""
    while not state.should_exit:
        sleep(state.stats_interval)

        if state.should_exit:
            break

        log_stats(state)
