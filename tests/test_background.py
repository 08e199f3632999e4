"""Tests for statistics formatting and logging."""
from __future__ import annotations

import logging
import time

from relay.background import format_bytes, format_uptime, log_stats
from relay.directory import NodeSession, SessionState
from tests.fakes import FakeBrokerClient, make_test_state


class TestFormatting:
    def test_uptime_minutes(self):
        assert format_uptime(125) == "2m"

    def test_uptime_hours(self):
        assert format_uptime(3 * 3600 + 61) == "3h 1m"

    def test_bytes(self):
        assert format_bytes(512) == "512B"
        assert format_bytes(2048) == "2.0KB"
        assert format_bytes(5 * 1024 * 1024) == "5.0MB"
        assert format_bytes(3 * 1024 ** 3) == "3.00GB"


class TestLogStats:
    def test_summarises_counters_and_sessions(self, caplog):
        state = make_test_state()
        state.directory.add_link("/dev/ttyUSB0")
        active = NodeSession(address=7, link="/dev/ttyUSB0", session_id=1, client=FakeBrokerClient())
        active.state = SessionState.ACTIVE
        state.directory.register(active)
        state.directory.register(NodeSession(address=8, link="/dev/ttyUSB0", session_id=2, client=FakeBrokerClient()))
        state.stats.update(frames_rx=10, frames_tx=4, frames_invalid=2, messages_invalid=1, bytes_rx=2048, publish_failures=3)

        with caplog.at_level(logging.INFO, logger="relay.background"):
            line = log_stats(state)

        assert "Frames RX/TX: 10/4" in line
        assert "Invalid: 2 frames, 1 messages" in line
        assert "RX bytes: 2.0KB" in line
        assert "Devices: 1" in line
        assert "Sessions: 1 active, 1 connecting, 0 closing" in line
        assert "Failures: 3" in line
        assert line in caplog.text

    def test_rolls_interval_counters(self):
        state = make_test_state()
        state.stats['frames_rx'] = 5
        state.stats['last_stats_log'] = time.time() - 60
        log_stats(state)
        assert state.stats['frames_rx_prev'] == 5
        assert time.time() - state.stats['last_stats_log'] < 5
