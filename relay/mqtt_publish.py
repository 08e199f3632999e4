"""MQTT publishing helpers."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .directory import NodeSession
    from .state import RelayState

logger = logging.getLogger(__name__)


def format_payload(payload: bytes) -> str:
    """Readable form of a payload for logs: text when long enough, repr for short binary markers."""
    if len(payload) > 4:
        return payload.decode('utf-8', errors='replace')
    return repr(payload)


def safe_publish(
    state: RelayState,
    session: NodeSession,
    topic: str,
    payload: bytes,
    retain: bool = True,
    qos: int = 0,
) -> bool:
    """Publish on one node's session; failures are logged and counted, never raised."""
    label = f"{state.namespace}/{session.address}"
    try:
        result = session.client.publish(topic, payload, qos=qos, retain=retain)
    except Exception as e:
        logger.error(f"[{label}] Publish error to {topic}: {str(e)}")
        state.stats['publish_failures'] += 1
        return False

    if not result:
        logger.error(f"[{label}] Publish failed to {topic}")
        state.stats['publish_failures'] += 1
        return False

    logger.debug(f"[{label}] Sent to MQTT: {topic} = {format_payload(payload)}")
    return True


def safe_subscribe(state: RelayState, session: NodeSession, topic: str, qos: int = 0) -> bool:
    label = f"{state.namespace}/{session.address}"
    try:
        session.client.subscribe(topic, qos=qos)
    except Exception as e:
        logger.error(f"[{label}] Error subscribing to {topic}: {e}")
        return False
    logger.debug(f"[{label}] Subscribed to {topic}")
    return True
