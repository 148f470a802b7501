"""
Audit Trail
===========
Append-only, hash-chained record of 2FA security events.

Each event's hash covers the previous event's hash, so removing or editing
an entry breaks the chain from that point on.
"""

import hashlib
import json
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import structlog

logger = structlog.get_logger(__name__)


class AuditEventType(str, Enum):
    """2FA audit event types."""
    TWO_FACTOR_ENABLED = "two_factor.enabled"
    TWO_FACTOR_DISABLED = "two_factor.disabled"
    CHALLENGE_ISSUED = "two_factor.challenge_issued"
    CHALLENGE_DELIVERY_FAILED = "two_factor.delivery_failed"
    VERIFY_SUCCEEDED = "two_factor.verify_succeeded"
    VERIFY_FAILED = "two_factor.verify_failed"
    CREDENTIALS_REJECTED = "auth.credentials_rejected"
    PROFILE_UPDATED = "profile.updated"
    PASSWORD_CHANGED = "profile.password_changed"


@dataclass
class AuditEvent:
    """An audit log entry with hash chain support."""
    id: str
    timestamp: datetime
    service: str
    event_type: str
    actor_id: Optional[str]
    outcome: str  # "success", "failure"
    payload: Dict[str, Any]
    hash: str
    previous_hash: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d


def compute_event_hash(
    previous_hash: Optional[str],
    timestamp: datetime,
    service: str,
    event_type: str,
    actor_id: Optional[str],
    outcome: str,
    payload: Dict[str, Any],
) -> str:
    """SHA-256 over a canonical JSON encoding of the event and its predecessor's hash."""
    hash_input = json.dumps({
        "previous_hash": previous_hash,
        "timestamp": timestamp.isoformat(),
        "service": service,
        "event_type": event_type,
        "actor_id": actor_id,
        "outcome": outcome,
        "payload": payload,
    }, sort_keys=True, separators=(",", ":"), default=str)

    return hashlib.sha256(hash_input.encode()).hexdigest()


def verify_chain_integrity(
    events: List[AuditEvent],
    anchor: Optional[str] = None,
) -> Tuple[bool, Optional[int]]:
    """
    Verify an audit chain in chronological order.

    `anchor` is the hash the first event must point to: None for the start
    of a chain, or the last shipped hash when checking a later segment.

    Returns:
        Tuple of (is_valid, first_invalid_index)
    """
    previous = anchor
    for i, event in enumerate(events):
        if event.previous_hash != previous:
            logger.warning("Audit chain linkage broken", event_id=event.id, index=i)
            return False, i
        expected = compute_event_hash(
            event.previous_hash,
            event.timestamp,
            event.service,
            event.event_type,
            event.actor_id,
            event.outcome,
            event.payload,
        )
        if event.hash != expected:
            logger.warning("Audit chain integrity violation", event_id=event.id, index=i)
            return False, i
        previous = event.hash
    return True, None


class AuditLogger:
    """
    Records hash-chained audit events.

    Every event is emitted through structlog as it happens; the log stream
    is the durable record. The most recent `max_buffer` events are also kept
    in memory for `flush()` by a shipper. Older ones are dropped, and
    `dropped` counts them.
    """

    def __init__(self, service_name: str, max_buffer: int = 1000):
        if max_buffer < 1:
            raise ValueError("max_buffer must be at least 1")
        self.service_name = service_name
        self.max_buffer = max_buffer
        self.dropped = 0
        self._previous_hash: Optional[str] = None
        self._buffer: deque = deque(maxlen=max_buffer)

    def set_previous_hash(self, hash_value: str) -> None:
        """Continue an existing chain (e.g. last hash read from storage on startup)."""
        self._previous_hash = hash_value

    def log(
        self,
        event_type: AuditEventType,
        actor_id: Optional[str] = None,
        outcome: str = "success",
        payload: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        timestamp = datetime.now(timezone.utc)
        payload = payload or {}
        event_type_str = event_type.value if isinstance(event_type, AuditEventType) else event_type

        event_hash = compute_event_hash(
            self._previous_hash,
            timestamp,
            self.service_name,
            event_type_str,
            actor_id,
            outcome,
            payload,
        )
        event = AuditEvent(
            id=str(uuid.uuid4()),
            timestamp=timestamp,
            service=self.service_name,
            event_type=event_type_str,
            actor_id=actor_id,
            outcome=outcome,
            payload=payload,
            hash=event_hash,
            previous_hash=self._previous_hash,
        )
        self._previous_hash = event_hash
        if len(self._buffer) == self.max_buffer:
            self.dropped += 1
        self._buffer.append(event)

        logger.info(
            "Audit event logged",
            event_id=event.id,
            event_type=event.event_type,
            actor_id=actor_id,
            outcome=outcome,
            payload=payload,
            hash=event_hash,
            previous_hash=event.previous_hash,
        )
        return event

    @property
    def pending(self) -> List[AuditEvent]:
        return list(self._buffer)

    def flush(self) -> List[AuditEvent]:
        """Return and clear buffered events."""
        events = list(self._buffer)
        self._buffer.clear()
        return events
