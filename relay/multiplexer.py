"""Serial bus multiplexer.

Watches the device directory for serial ports, opens them as they appear and
reports everything that happens on them as events on ``state.events``:

- ``LinkAdded`` / ``LinkRemoved`` when a device node appears or disappears;
- ``DeviceAttached`` / ``DeviceDetached`` when a port is opened or closed;
- ``FrameReceived`` for each complete frame read from an attached port;
- ``TransportError`` for ports that fail to open, read or write.

Each attached port gets its own reader thread. ``DeviceAttached`` is always
queued before any frame of that link and no frame of a link is queued after
its ``DeviceDetached``.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from time import sleep
from typing import Any, Callable, TYPE_CHECKING

import serial

from .events import DeviceAttached, DeviceDetached, FrameReceived, LinkAdded, LinkRemoved, TransportError
from .serial_connection import SerialConnection, open_connection

if TYPE_CHECKING:
    from .state import RelayState

logger = logging.getLogger(__name__)


def detect_serial_devices(scan_dir: str = "/dev", patterns: list[str] | None = None) -> list[str]:
    """List serial device nodes in scan_dir matching the glob patterns."""
    if patterns is None:
        patterns = ["ttyUSB*", "ttyACM*"]

    directory = Path(scan_dir)
    if not directory.is_dir():
        return []

    devices: list[str] = []
    for pattern in patterns:
        for p in sorted(directory.glob(pattern)):
            if str(p) not in devices:
                devices.append(str(p))
    return devices


class SerialMultiplexer:
    """Discovers device links and moves frames between them and the event queue."""

    def __init__(
        self,
        state: RelayState,
        opener: Callable[..., SerialConnection | None] = open_connection,
        scanner: Callable[[str, list[str]], list[str]] = detect_serial_devices,
    ) -> None:
        self.state = state
        self._opener = opener
        self._scanner = scanner

        serial_cfg = state.config.get('serial', {})
        self.scan_dir: str = serial_cfg.get('scan_dir', '/dev')
        self.patterns: list[str] = serial_cfg.get('patterns', ['ttyUSB*', 'ttyACM*'])
        self.baud_rate: int = serial_cfg.get('baud_rate', 115200)
        self.timeout: float = serial_cfg.get('timeout', 0.1)
        self.scan_interval: float = serial_cfg.get('scan_interval', 1.0)
        self.autoadd: bool = serial_cfg.get('autoadd', True)

        self._known: set[str] = set()
        self._connections: dict[str, SerialConnection] = {}
        self._readers: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()
        self._running = False
        self._scan_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._running = True
        self._scan_thread = threading.Thread(target=self._scan_loop, daemon=True, name="Serial-Scanner")
        self._scan_thread.start()
        logger.info(f"Watching {self.scan_dir} for {', '.join(self.patterns)}")

    def stop(self) -> None:
        """Stop scanning and detach every link."""
        self._running = False
        if self._scan_thread and self._scan_thread.is_alive():
            self._scan_thread.join(timeout=5)

        for link in self.links:
            self.detach(link)

        for reader in list(self._readers.values()):
            if reader.is_alive():
                reader.join(timeout=2)
        self._readers.clear()

    def _scan_loop(self) -> None:
        while self._running and not self.state.should_exit:
            try:
                self.scan_once()
            except Exception as e:
                logger.exception(f"Serial scan failed: {e}")
            sleep(self.scan_interval)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def scan_once(self) -> None:
        """Diff the device directory against known links and attach/detach accordingly."""
        present = set(self._scanner(self.scan_dir, self.patterns))

        for link in sorted(present - self._known):
            self._known.add(link)
            self._emit(LinkAdded(link))
            if self.autoadd:
                self.attach(link)

        for link in sorted(self._known - present):
            self._known.discard(link)
            self.detach(link)
            self._emit(LinkRemoved(link))

    def attach(self, link: str) -> bool:
        with self._lock:
            if link in self._connections:
                return True

        conn = self._opener(link, self.baud_rate, self.timeout)
        if conn is None:
            self._emit(TransportError(link, "could not open serial port"))
            return False

        with self._lock:
            self._connections[link] = conn
            self._emit(DeviceAttached(link))

        if self._running:
            reader = threading.Thread(target=self._reader_loop, args=(link,), daemon=True, name=f"Serial-Reader-{link}")
            self._readers[link] = reader
            reader.start()
        return True

    def detach(self, link: str) -> bool:
        with self._lock:
            conn = self._connections.pop(link, None)
            if conn is None:
                return False
            self._emit(DeviceDetached(link))
        conn.close()
        return True

    # ------------------------------------------------------------------
    # Frame I/O
    # ------------------------------------------------------------------

    def poll(self, link: str) -> int:
        """Read once from a link and queue the complete frames. Returns the frame count."""
        with self._lock:
            conn = self._connections.get(link)
        if conn is None:
            return 0

        try:
            frames = conn.read_frames()
        except (serial.SerialException, OSError) as e:
            self._emit(TransportError(link, str(e)))
            self.detach(link)
            return 0

        with self._lock:
            if self._connections.get(link) is not conn:
                return 0
            for frame in frames:
                self._emit(FrameReceived(link, frame))
        return len(frames)

    def _reader_loop(self, link: str) -> None:
        while self._running and link in self._connections:
            self.poll(link)
        self._readers.pop(link, None)

    def send(self, link: str, data: bytes) -> bool:
        with self._lock:
            conn = self._connections.get(link)
        if conn is None:
            logger.warning(f"Cannot send to {link}: device not attached")
            return False

        try:
            conn.send_frame(data)
        except (serial.SerialException, OSError) as e:
            logger.error(f"Failed to send to {link}: {e}")
            self._emit(TransportError(link, str(e)))
            return False

        logger.debug(f"Serial sent to {link}: {data!r}")
        return True

    def broadcast(self, data: bytes) -> int:
        """Send a frame to every attached link; returns how many accepted it."""
        return sum(1 for link in self.links if self.send(link, data))

    @property
    def links(self) -> list[str]:
        with self._lock:
            return list(self._connections)

    def _emit(self, event: Any) -> None:
        self.state.events.put(event)
