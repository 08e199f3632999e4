"""Selene packet codec.

Converts between raw serial frames, ``Packet`` objects and MQTT
``(topic, payload)`` pairs. Every decoding entry point returns ``None`` for
input it does not understand instead of raising.

Packet layout (big-endian)::

    [address: uint32][command: uint8][payload: 0..n bytes]

Node -> relay commands map to state topics::

    ANNOUNCE   name (utf-8)           -> <ns>/<address>/name
    PIN_VALUE  pin:uint8 value:uint16 -> <ns>/<address>/pin/<pin>   (decimal text)

Relay -> node commands come from ``<ns>/<address>/pin/<pin>/r``::

    empty payload         -> PIN_READ  pin:uint8
    decimal text payload  -> PIN_WRITE pin:uint8 value:uint16

``DISCOVERY`` (empty payload) is only ever sent to the broadcast address.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, cast

from construct import ConstructError, GreedyBytes, Int8ub, Int16ub, Int32ub, Struct, Terminated

from . import topics

logger = logging.getLogger(__name__)

BROADCAST_ADDRESS = 0xFFFFFFFF
MAX_NAME_LENGTH = 64
MAX_PIN_VALUE = 0xFFFF

PACKET_STRUCT: Any = Struct(
    cast(Any, "address") / Int32ub,
    cast(Any, "command") / Int8ub,
    cast(Any, "payload") / GreedyBytes,
)

PIN_STRUCT: Any = Struct(
    cast(Any, "pin") / Int8ub,
    Terminated,
)

PIN_VALUE_STRUCT: Any = Struct(
    cast(Any, "pin") / Int8ub,
    cast(Any, "value") / Int16ub,
    Terminated,
)


class Command(enum.IntEnum):
    DISCOVERY = 0x00
    ANNOUNCE = 0x01
    PIN_VALUE = 0x02
    PIN_READ = 0x10
    PIN_WRITE = 0x11


@dataclass(frozen=True)
class DecodedFrame:
    """A node frame already mapped onto its MQTT topic."""

    address: int
    topic: str
    payload: bytes


@dataclass(frozen=True)
class Packet:
    address: int
    command: Command
    payload: bytes = b""

    @classmethod
    def from_buffer(cls, data: bytes) -> Packet | None:
        """Parse a raw frame, or None if it is not a well-formed Selene packet."""
        try:
            parsed = PACKET_STRUCT.parse(data)
        except ConstructError as e:
            logger.debug(f"Not a Selene packet ({e}): {data!r}")
            return None

        try:
            command = Command(parsed.command)
        except ValueError:
            logger.debug(f"Unknown Selene command 0x{parsed.command:02x}")
            return None

        packet = cls(parsed.address, command, bytes(parsed.payload))
        if not packet.payload_is_valid():
            logger.debug(f"Malformed {command.name} payload: {packet.payload!r}")
            return None
        return packet

    @classmethod
    def from_mqtt(cls, topic: str, payload: bytes, namespace: str) -> Packet | None:
        """Build the relay -> node packet for a pin command topic."""
        split = topics.split_node_topic(topic, namespace)
        if split is None:
            return None
        address, rest = split
        if address >= BROADCAST_ADDRESS:
            return None
        if len(rest) != 3 or rest[0] != 'pin' or rest[2] != 'r' or not topics.is_decimal(rest[1]):
            return None
        pin = int(rest[1])
        if pin > 0xFF:
            return None

        text = payload.decode('ascii', errors='replace').strip()
        if not text:
            return cls(address, Command.PIN_READ, PIN_STRUCT.build({'pin': pin}))
        if not topics.is_decimal(text) or int(text) > MAX_PIN_VALUE:
            return None
        return cls(address, Command.PIN_WRITE, PIN_VALUE_STRUCT.build({'pin': pin, 'value': int(text)}))

    def payload_is_valid(self) -> bool:
        if self.command is Command.DISCOVERY:
            return not self.payload
        if self.command is Command.ANNOUNCE:
            if not 0 < len(self.payload) <= MAX_NAME_LENGTH:
                return False
            try:
                self.payload.decode('utf-8')
            except UnicodeDecodeError:
                return False
            return True
        if self.command in (Command.PIN_VALUE, Command.PIN_WRITE):
            return _parses(PIN_VALUE_STRUCT, self.payload)
        if self.command is Command.PIN_READ:
            return _parses(PIN_STRUCT, self.payload)
        return False

    def to_buffer(self) -> bytes:
        return PACKET_STRUCT.build({
            'address': self.address,
            'command': int(self.command),
            'payload': self.payload,
        })

    def to_mqtt(self, namespace: str) -> tuple[str, bytes] | None:
        """Topic and payload for node -> relay packets; None for any other command."""
        if self.command is Command.ANNOUNCE:
            return topics.name_topic(namespace, self.address), self.payload
        if self.command is Command.PIN_VALUE:
            parsed = PIN_VALUE_STRUCT.parse(self.payload)
            return topics.pin_topic(namespace, self.address, parsed.pin), str(parsed.value).encode()
        return None


def _parses(struct: Any, data: bytes) -> bool:
    try:
        struct.parse(data)
    except ConstructError:
        return False
    return True


def decode_frame(data: bytes, namespace: str) -> DecodedFrame | None:
    """Map a raw frame from a node onto (address, topic, payload)."""
    packet = Packet.from_buffer(data)
    if packet is None:
        return None
    if packet.address == BROADCAST_ADDRESS:
        logger.debug("Ignoring frame addressed to the broadcast address")
        return None
    mqtt_message = packet.to_mqtt(namespace)
    if mqtt_message is None:
        logger.debug(f"{packet.command.name} frame has no topic mapping")
        return None
    topic, payload = mqtt_message
    return DecodedFrame(packet.address, topic, payload)


def encode_discovery(address: int = BROADCAST_ADDRESS) -> bytes:
    return Packet(address, Command.DISCOVERY).to_buffer()


def decode_topic_message(topic: str, payload: bytes, namespace: str) -> bytes | None:
    """Map a command topic message onto the raw frame to send to the bus."""
    packet = Packet.from_mqtt(topic, payload, namespace)
    if packet is None:
        return None
    return packet.to_buffer()
