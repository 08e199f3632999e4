"""Topic naming and broker URL helpers."""
from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

ONLINE = b"\x01"
OFFLINE = b"\x00"

DEFAULT_PORTS = {
    'mqtt': 1883,
    'tcp': 1883,
    'mqtts': 8883,
    'ssl': 8883,
    'ws': 80,
    'wss': 443,
}


@dataclass(frozen=True)
class BrokerEndpoint:
    """Connection parameters parsed from the broker URL."""

    host: str
    port: int
    transport: str = 'tcp'
    tls: bool = False
    path: str = '/'

    @property
    def url(self) -> str:
        scheme = ('wss' if self.tls else 'ws') if self.transport == 'websockets' else ('mqtts' if self.tls else 'mqtt')
        return f"{scheme}://{self.host}:{self.port}"


def node_prefix(namespace: str, address: int) -> str:
    return f"{namespace}/{address}"


def connection_topic(namespace: str, address: int) -> str:
    """Retained online/offline marker for one node."""
    return f"{node_prefix(namespace, address)}/connection"


def command_subscription(namespace: str, address: int) -> str:
    """Wildcard matching every pin command topic of one node."""
    return f"{node_prefix(namespace, address)}/pin/+/r"


def name_topic(namespace: str, address: int) -> str:
    return f"{node_prefix(namespace, address)}/name"


def pin_topic(namespace: str, address: int, pin: int) -> str:
    return f"{node_prefix(namespace, address)}/pin/{pin}"


def pin_command_topic(namespace: str, address: int, pin: int) -> str:
    return f"{pin_topic(namespace, address, pin)}/r"


def is_decimal(text: str) -> bool:
    """True for a non-empty run of ASCII digits 0-9."""
    return text.isascii() and text.isdecimal()


def split_node_topic(topic: str, namespace: str) -> tuple[int, list[str]] | None:
    """Split '<ns>/<address>/rest...' into (address, rest) or None if it doesn't belong to us."""
    parts = topic.split('/')
    if len(parts) < 3 or parts[0] != namespace:
        return None
    if not is_decimal(parts[1]):
        return None
    return int(parts[1]), parts[2:]


def sanitize_client_id(name: str, prefix: str = "selene_") -> str:
    """Convert a name to a valid MQTT client ID."""
    client_id = prefix + name.replace(" ", "_")
    client_id = re.sub(r"[^a-zA-Z0-9_-]", "", client_id)
    return client_id[:23]


def parse_broker_url(url: str) -> BrokerEndpoint:
    """Parse mqtt://, mqtts://, ws:// or wss:// URLs into a BrokerEndpoint.

    Raises ValueError for unsupported schemes or a missing host.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise ValueError(f"Unsupported broker URL scheme: {parts.scheme!r}")
    if not parts.hostname:
        raise ValueError(f"No host in broker URL: {url!r}")

    transport = 'websockets' if scheme in ('ws', 'wss') else 'tcp'
    tls = scheme in ('mqtts', 'ssl', 'wss')
    port = parts.port or DEFAULT_PORTS[scheme]
    path = parts.path or '/'
    return BrokerEndpoint(host=parts.hostname, port=port, transport=transport, tls=tls, path=path)
