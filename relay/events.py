"""Events consumed by the bridge controller.

Serial-side events are produced by the multiplexer threads, session events by
paho's network threads. All of them go through one queue so the controller
handles them strictly one at a time.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LinkAdded:
    link: str


@dataclass(frozen=True)
class LinkRemoved:
    link: str


@dataclass(frozen=True)
class DeviceAttached:
    link: str


@dataclass(frozen=True)
class DeviceDetached:
    link: str


@dataclass(frozen=True)
class FrameReceived:
    link: str
    data: bytes


@dataclass(frozen=True)
class TransportError:
    context: str
    detail: str


@dataclass(frozen=True)
class SessionConnected:
    address: int
    session_id: int
    success: bool = True
    reason: str = "Success"


@dataclass(frozen=True)
class SessionMessage:
    address: int
    session_id: int
    topic: str
    payload: bytes


@dataclass(frozen=True)
class SessionClosed:
    address: int
    session_id: int
    reason: str = ""
