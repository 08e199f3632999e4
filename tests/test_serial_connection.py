"""Tests for COBS framing and RealSerialConnection with mock serial.Serial."""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import serial

from relay.serial_connection import (
    MAX_BUFFERED_BYTES,
    FrameDecoder,
    RealSerialConnection,
    encode_frame,
    open_connection,
)


def _make_conn(chunks: list[bytes]) -> tuple[RealSerialConnection, MagicMock]:
    """Create a RealSerialConnection with a mock serial port."""
    mock_port = MagicMock(spec=serial.Serial)
    mock_port.is_open = True
    mock_port.in_waiting = 0
    mock_port.read.side_effect = chunks
    conn = RealSerialConnection("/dev/ttyUSB0", mock_port)
    return conn, mock_port


# ------------------------------------------------------------------
# Framing
# ------------------------------------------------------------------

class TestEncodeFrame:
    def test_discovery(self):
        assert encode_frame(b"\xff\xff\xff\xff\x00") == b"\x05\xff\xff\xff\xff\x01\x00"

    def test_no_zero_inside(self):
        framed = encode_frame(bytes([0, 0, 0, 7, 0x02, 3, 0, 0]))
        assert framed.index(b"\x00") == len(framed) - 1


class TestFrameDecoder:
    def test_single_frame(self):
        decoder = FrameDecoder()
        assert decoder.feed(encode_frame(b"\x00\x00\x00\x07\x01hi")) == [b"\x00\x00\x00\x07\x01hi"]

    def test_frame_split_across_chunks(self):
        decoder = FrameDecoder()
        framed = encode_frame(b"\x00\x00\x00\x07\x02\x03\x00\x16")
        assert decoder.feed(framed[:3]) == []
        assert decoder.feed(framed[3:]) == [b"\x00\x00\x00\x07\x02\x03\x00\x16"]

    def test_several_frames_in_one_chunk(self):
        decoder = FrameDecoder()
        chunk = encode_frame(b"one") + encode_frame(b"two")
        assert decoder.feed(chunk) == [b"one", b"two"]

    def test_empty_chunks_skipped(self):
        decoder = FrameDecoder()
        assert decoder.feed(b"\x00\x00" + encode_frame(b"x")) == [b"x"]
        assert decoder.invalid == 0

    def test_bad_encoding_dropped(self):
        decoder = FrameDecoder()
        assert decoder.feed(b"\x05\x01\x00" + encode_frame(b"ok")) == [b"ok"]
        assert decoder.invalid == 1

    def test_overflow_discarded(self):
        decoder = FrameDecoder()
        decoder.feed(b"\x01" * (MAX_BUFFERED_BYTES + 1))
        assert decoder.feed(encode_frame(b"after")) == [b"after"]


# ------------------------------------------------------------------
# RealSerialConnection
# ------------------------------------------------------------------

class TestRealSerialConnection:
    def test_read_frames(self):
        conn, port = _make_conn([encode_frame(b"abc")])
        assert conn.read_frames() == [b"abc"]
        port.read.assert_called_once_with(1)

    def test_read_uses_in_waiting(self):
        conn, port = _make_conn([b""])
        port.in_waiting = 12
        conn.read_frames()
        port.read.assert_called_once_with(12)

    def test_read_timeout_returns_nothing(self):
        conn, _ = _make_conn([b""])
        assert conn.read_frames() == []

    def test_partial_frame_kept_between_reads(self):
        framed = encode_frame(b"abcdef")
        conn, _ = _make_conn([framed[:4], framed[4:]])
        assert conn.read_frames() == []
        assert conn.read_frames() == [b"abcdef"]

    def test_send_frame_encodes_and_flushes(self):
        conn, port = _make_conn([])
        conn.send_frame(b"\xff\xff\xff\xff\x00")
        port.write.assert_called_once_with(b"\x05\xff\xff\xff\xff\x01\x00")
        port.flush.assert_called_once()

    def test_close(self):
        conn, port = _make_conn([])
        conn.close()
        port.close.assert_called_once()

    def test_close_swallows_port_errors(self):
        conn, port = _make_conn([])
        port.close.side_effect = serial.SerialException("gone")
        conn.close()

    def test_is_open(self):
        conn, port = _make_conn([])
        assert conn.is_open is True
        port.is_open = False
        assert conn.is_open is False


class TestOpenConnection:
    def test_opens_port(self):
        with patch("relay.serial_connection.serial.Serial") as serial_cls:
            conn = open_connection("/dev/ttyACM0", 57600, 0.2)

        assert isinstance(conn, RealSerialConnection)
        assert conn.port == "/dev/ttyACM0"
        kwargs = serial_cls.call_args.kwargs
        assert kwargs['port'] == "/dev/ttyACM0"
        assert kwargs['baudrate'] == 57600
        assert kwargs['timeout'] == 0.2
        serial_cls.return_value.reset_input_buffer.assert_called_once()

    def test_failure_returns_none(self):
        with patch("relay.serial_connection.serial.Serial", side_effect=serial.SerialException("busy")):
            assert open_connection("/dev/ttyACM0") is None
