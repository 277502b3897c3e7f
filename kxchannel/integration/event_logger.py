"""
Event Logger Module

Security audit trail for client sessions.

Every security-relevant step of a session is recorded as a SecurityEvent,
kept in memory for inspection and forwarded to the stdlib logger
``kxchannel.audit``.

Events recorded:
- Connection open / close
- Key exchange success and failure
- Message receipt
- Protocol, authentication and connection failures

Privacy rules: event details never include key material, nonces or
plaintext. Message events carry only sizes.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Callable

from ..errors import (
    AuthenticationError,
    HandshakeError,
    ProtocolError,
    TransportError,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("kxchannel.audit")


# ============================================================================
# Constants
# ============================================================================

EVENT_VERSION = "1.0"
KX_ALGORITHM = "X25519-BLAKE2b"
AEAD_ALGORITHM = "ChaCha20-Poly1305-IETF"


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    """Types of security events that can be logged."""

    # Connection events
    CONNECT = "connect"
    CONNECTION_ERROR = "connection_error"
    SESSION_CLOSED = "session_closed"

    # Key exchange events
    KEY_EXCHANGE = "key_exchange"
    HANDSHAKE_FAILED = "handshake_failed"

    # Messaging events
    MESSAGE_RECEIVE = "message_receive"
    PROTOCOL_ERROR = "protocol_error"
    AUTHENTICATION_FAILED = "authentication_failed"

    # Anything else that aborted a session
    SESSION_FAILED = "session_failed"


_FAILURE_TYPES = (
    (HandshakeError, EventType.HANDSHAKE_FAILED),
    (ProtocolError, EventType.PROTOCOL_ERROR),
    (AuthenticationError, EventType.AUTHENTICATION_FAILED),
    (TransportError, EventType.CONNECTION_ERROR),
)

_WARNING_TYPES = {
    EventType.CONNECTION_ERROR,
    EventType.HANDSHAKE_FAILED,
    EventType.PROTOCOL_ERROR,
    EventType.AUTHENTICATION_FAILED,
    EventType.SESSION_FAILED,
}


def event_type_for_error(error: BaseException) -> EventType:
    """Map an error to the event type that records it."""
    for error_class, event_type in _FAILURE_TYPES:
        if isinstance(error, error_class):
            return event_type
    return EventType.SESSION_FAILED


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class SecurityEvent:
    """A single security event for one peer."""
    event_type: EventType
    peer: str       # "host:port" of the remote side
    timestamp: int  # Unix timestamp
    details: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize to a compact JSON line."""
        return json.dumps({
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'peer': self.peer,
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp).isoformat(),
            'details': self.details,
        }, separators=(',', ':'))

    @classmethod
    def from_json(cls, line: str) -> 'SecurityEvent':
        """Parse an event produced by to_json()."""
        data = json.loads(line)
        return cls(
            event_type=EventType(data['type']),
            peer=data['peer'],
            timestamp=data['time'],
            details=data.get('details', {}),
        )

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | peer:{self.peer}"
        )


# ============================================================================
# Event Logger
# ============================================================================

class EventLogger:
    """
    In-memory security event log with callbacks.

    Each event is also written to the ``kxchannel.audit`` logger: failures
    at WARNING, everything else at INFO.
    """

    def __init__(self, max_events: Optional[int] = None):
        """
        Args:
            max_events: Keep at most this many events (oldest dropped first);
                None keeps everything
        """
        self._events: List[SecurityEvent] = []
        self._max_events = max_events
        self._callbacks: List[Callable[[SecurityEvent], None]] = []

    def _add_event(self, event: SecurityEvent) -> SecurityEvent:
        self._events.append(event)
        if self._max_events is not None and len(self._events) > self._max_events:
            del self._events[:len(self._events) - self._max_events]

        level = logging.WARNING if event.event_type in _WARNING_TYPES else logging.INFO
        audit_logger.log(level, "%s %s", event, event.details or "")

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception:
                # A broken callback must not abort the session being logged
                logger.exception("event callback failed for %s", event.event_type.value)
        return event

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # ========================================================================
    # Session Events
    # ========================================================================

    def log_connect(self, peer: str) -> SecurityEvent:
        """Log that the transport to peer is open."""
        return self._add_event(SecurityEvent(
            event_type=EventType.CONNECT,
            peer=peer,
            timestamp=int(time.time()),
        ))

    def log_key_exchange(self, peer: str,
                         algorithm: str = KX_ALGORITHM) -> SecurityEvent:
        """Log a completed key exchange."""
        return self._add_event(SecurityEvent(
            event_type=EventType.KEY_EXCHANGE,
            peer=peer,
            timestamp=int(time.time()),
            details={'algo': algorithm, 'peer_authenticated': False},
        ))

    def log_message_receive(self, peer: str, ciphertext_size: int,
                            plaintext_size: int,
                            algorithm: str = AEAD_ALGORITHM) -> SecurityEvent:
        """
        Log a decrypted message.

        Args:
            peer: Remote address
            ciphertext_size: Bytes on the wire, tag included
            plaintext_size: Bytes recovered
            algorithm: AEAD used
        """
        return self._add_event(SecurityEvent(
            event_type=EventType.MESSAGE_RECEIVE,
            peer=peer,
            timestamp=int(time.time()),
            details={
                'size': ciphertext_size,
                'plaintext_size': plaintext_size,
                'algo': algorithm,
            },
        ))

    def log_failure(self, peer: str, error: BaseException,
                    state: Optional[str] = None) -> SecurityEvent:
        """
        Log an error that aborted a session.

        Only the error kind, message and session state are recorded.
        """
        details = {
            'kind': getattr(error, 'kind', error.__class__.__name__),
            'reason': str(error),
        }
        if state:
            details['state'] = state
        return self._add_event(SecurityEvent(
            event_type=event_type_for_error(error),
            peer=peer,
            timestamp=int(time.time()),
            details=details,
        ))

    def log_close(self, peer: str) -> SecurityEvent:
        """Log an orderly session close."""
        return self._add_event(SecurityEvent(
            event_type=EventType.SESSION_CLOSED,
            peer=peer,
            timestamp=int(time.time()),
        ))

    # ========================================================================
    # Queries
    # ========================================================================

    def get_all_events(self) -> List[SecurityEvent]:
        """All retained events, oldest first."""
        return list(self._events)

    def get_events_by_type(self, event_type: EventType) -> List[SecurityEvent]:
        """Get events of a specific type."""
        return [e for e in self._events if e.event_type == event_type]

    def get_recent_events(self, count: int = 10) -> List[SecurityEvent]:
        """Get the most recent events."""
        return self._events[-count:] if count > 0 else []

    def export_log(self) -> str:
        """Export the log as newline-delimited JSON."""
        return "\n".join(event.to_json() for event in self._events)

    def __len__(self) -> int:
        return len(self._events)
