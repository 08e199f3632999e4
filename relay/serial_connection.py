"""Serial connection abstraction for Selene device links.

Frames travel COBS-encoded and 0x00-terminated, so a reader that joins the
stream mid-frame resynchronises at the next delimiter.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

import serial
from cobs import cobs

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b"\x00"
MAX_BUFFERED_BYTES = 4096


def encode_frame(data: bytes) -> bytes:
    return cobs.encode(data) + FRAME_DELIMITER


class FrameDecoder:
    """Accumulates raw serial bytes and yields complete frames."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.invalid = 0

    def feed(self, chunk: bytes) -> list[bytes]:
        self._buffer.extend(chunk)
        frames: list[bytes] = []

        while True:
            end = self._buffer.find(FRAME_DELIMITER)
            if end < 0:
                break
            encoded = bytes(self._buffer[:end])
            del self._buffer[:end + 1]
            if not encoded:
                continue
            try:
                frames.append(cobs.decode(encoded))
            except cobs.DecodeError as e:
                self.invalid += 1
                logger.debug(f"Dropping undecodable serial chunk ({e}): {encoded!r}")

        if len(self._buffer) > MAX_BUFFERED_BYTES:
            logger.debug(f"Discarding {len(self._buffer)} bytes without a frame delimiter")
            self._buffer.clear()

        return frames


class SerialConnection(ABC):
    """One attached device link.

    Reads happen on the link's own reader thread; writes may come from any
    thread and are serialised by the implementation.
    """

    port: str

    @abstractmethod
    def read_frames(self) -> list[bytes]:
        """Read whatever is available (waiting at most the port timeout) and return complete frames."""
        ...

    @abstractmethod
    def send_frame(self, data: bytes) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @property
    @abstractmethod
    def is_open(self) -> bool: ...


class RealSerialConnection(SerialConnection):
    """Concrete implementation wrapping serial.Serial."""

    def __init__(self, port: str, ser: serial.Serial) -> None:
        self.port = port
        self._port = ser
        self._write_lock = threading.Lock()
        self._decoder = FrameDecoder()

    def read_frames(self) -> list[bytes]:
        chunk = self._port.read(self._port.in_waiting or 1)
        if not chunk:
            return []
        return self._decoder.feed(chunk)

    def send_frame(self, data: bytes) -> None:
        with self._write_lock:
            self._port.write(encode_frame(data))
            self._port.flush()

    def close(self) -> None:
        try:
            with self._write_lock:
                if self._port and getattr(self._port, 'is_open', False):
                    logger.debug(f"Closing serial connection {self.port}")
                    self._port.close()
        except (serial.SerialException, OSError) as e:
            logger.debug(f"Error closing {self.port}: {e}")

    @property
    def is_open(self) -> bool:
        return getattr(self._port, 'is_open', False)


def open_connection(port: str, baud_rate: int = 115200, timeout: float = 0.1) -> RealSerialConnection | None:
    """Open one serial port, or None if it can't be opened."""
    try:
        ser = serial.Serial(
            port=port,
            baudrate=baud_rate,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            bytesize=serial.EIGHTBITS,
            timeout=timeout,
            rtscts=False
        )
        ser.reset_input_buffer()
        ser.reset_output_buffer()
    except (serial.SerialException, OSError) as e:
        logger.warning(f"Failed to connect to {port}: {str(e)}")
        return None

    logger.info(f"Connected to {port} at {baud_rate} baud")
    return RealSerialConnection(port, ser)
