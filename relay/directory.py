"""Session directory and retained-state cache.

Neither class locks: both are only ever touched from the controller's event
loop.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .broker_client import BrokerClient

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    ABSENT = "absent"
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"


@dataclass
class NodeSession:
    """The broker session owned by one node address."""

    address: int
    link: str
    session_id: int
    client: BrokerClient
    state: SessionState = SessionState.CONNECTING
    connected: bool = False
    teardown_pending: bool = False
    # Frames seen while CLOSING, replayed into the next session
    backlog: dict[str, bytes] = field(default_factory=dict)
    backlog_link: str | None = None


class SessionDirectory:
    """address -> NodeSession, and link -> addresses attached through it."""

    def __init__(self) -> None:
        self._sessions: dict[int, NodeSession] = {}
        self._links: dict[str, set[int]] = {}

    # Links

    def add_link(self, link: str) -> bool:
        """Start tracking a link. Returns False if it was already tracked."""
        if link in self._links:
            return False
        self._links[link] = set()
        return True

    def remove_link(self, link: str) -> set[int] | None:
        """Stop tracking a link and return the addresses that were under it."""
        return self._links.pop(link, None)

    def has_link(self, link: str) -> bool:
        return link in self._links

    def links(self) -> list[str]:
        return list(self._links)

    def addresses_for(self, link: str) -> set[int]:
        return set(self._links.get(link, ()))

    # Sessions

    def register(self, session: NodeSession) -> None:
        if session.address in self._sessions:
            raise ValueError(f"Session already registered for address {session.address}")
        if session.link not in self._links:
            raise KeyError(f"Unknown link {session.link}")
        self._sessions[session.address] = session
        self._links[session.link].add(session.address)

    def get(self, address: int) -> NodeSession | None:
        return self._sessions.get(address)

    def state_of(self, address: int) -> SessionState:
        session = self._sessions.get(address)
        return session.state if session else SessionState.ABSENT

    def remove(self, address: int) -> NodeSession | None:
        session = self._sessions.pop(address, None)
        if session is not None:
            addresses = self._links.get(session.link)
            if addresses is not None:
                addresses.discard(address)
        return session

    def sessions(self) -> list[NodeSession]:
        return list(self._sessions.values())

    def count_by_state(self) -> dict[SessionState, int]:
        counts = {state: 0 for state in SessionState if state is not SessionState.ABSENT}
        for session in self._sessions.values():
            counts[session.state] += 1
        return counts

    def __contains__(self, address: object) -> bool:
        return address in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class RetainedCache:
    """Last payload seen per topic, per node address."""

    def __init__(self) -> None:
        self._entries: dict[int, dict[str, bytes]] = {}

    def update(self, address: int, topic: str, payload: bytes) -> None:
        self._entries.setdefault(address, {})[topic] = payload

    def snapshot(self, address: int) -> dict[str, bytes]:
        return dict(self._entries.get(address, {}))

    def drop(self, address: int) -> None:
        self._entries.pop(address, None)

    def addresses(self) -> list[int]:
        return list(self._entries)

    def __contains__(self, address: object) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)
