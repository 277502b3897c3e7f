"""
Client Session

Sequences the client flow for one connection:

    CONNECTING -> HANDSHAKING -> READY -> RECEIVING -> CLOSED
        |              |           |           |
        +--------------+-----------+-----------+--> FAILED

Any error raised by a step moves the session to FAILED: the channel is
closed, the session keys are zeroed, the failure is logged, and the error
propagates to the caller. Nothing is retried and nothing reconnects.

Example:
    initialize()
    config = ClientConfig(host="127.0.0.1")
    with ClientSession(config) as session:
        plaintext = session.run()
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Optional

from ..config import ClientConfig
from ..messaging.key_exchange import SessionKeys, perform_client_handshake
from ..messaging.secure_channel import TAG_SIZE, decrypt_framed_message
from ..transport.stream_io import Channel, close_quietly, open_connection
from .event_logger import EventLogger

logger = logging.getLogger(__name__)

Connector = Callable[[ClientConfig], Channel]


class SessionState(Enum):
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    READY = "ready"
    RECEIVING = "receiving"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES = (SessionState.CLOSED, SessionState.FAILED)


def tcp_connector(config: ClientConfig) -> Channel:
    """Open a TCP connection to the configured server."""
    return open_connection(config.host, config.port, config.timeout)


class ClientSession:
    """
    One client connection: connect, key exchange, receive one message.

    The session owns its channel and session keys exclusively; nothing is
    shared between sessions.
    """

    def __init__(self, config: ClientConfig,
                 connector: Optional[Connector] = None,
                 event_logger: Optional[EventLogger] = None):
        """
        Args:
            config: Client settings
            connector: Returns a connected channel for the config; defaults
                to a TCP connection to config.host:config.port
            event_logger: Audit log; a private one is created if omitted
        """
        self._config = config
        self._connector = connector if connector is not None else tcp_connector
        self._events = event_logger if event_logger is not None else EventLogger()
        self._state = SessionState.CONNECTING
        self._channel: Optional[Channel] = None
        self._keys: Optional[SessionKeys] = None
        self._error: Optional[BaseException] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def keys(self) -> Optional[SessionKeys]:
        """Session keys once derived; zeroed after close or failure."""
        return self._keys

    @property
    def error(self) -> Optional[BaseException]:
        """The error that moved the session to FAILED, if any."""
        return self._error

    @property
    def events(self) -> EventLogger:
        return self._events

    @property
    def peer(self) -> str:
        return self._config.address

    def _expect(self, state: SessionState, action: str) -> None:
        if self._state is not state:
            raise RuntimeError(
                f"cannot {action} while session is {self._state.value}"
            )

    @contextmanager
    def _failing_on_error(self):
        try:
            yield
        except Exception as exc:
            self._fail(exc)
            raise

    def connect(self) -> None:
        """Open the transport. CONNECTING -> HANDSHAKING."""
        self._expect(SessionState.CONNECTING, "connect")
        with self._failing_on_error():
            self._channel = self._connector(self._config)
        self._state = SessionState.HANDSHAKING
        self._events.log_connect(self.peer)

    def handshake(self) -> None:
        """Run the key exchange. HANDSHAKING -> READY."""
        self._expect(SessionState.HANDSHAKING, "handshake")
        with self._failing_on_error():
            self._keys = perform_client_handshake(self._channel)
        self._state = SessionState.READY
        self._events.log_key_exchange(self.peer)

    def receive_message(self) -> bytes:
        """
        Receive and decrypt the single framed message, then close.

        READY -> RECEIVING -> CLOSED.

        Returns:
            Plaintext bytes
        """
        self._expect(SessionState.READY, "receive")
        self._state = SessionState.RECEIVING
        with self._failing_on_error():
            plaintext = decrypt_framed_message(
                self._channel, self._keys.rx, self._config.max_message_size
            )
        self._events.log_message_receive(
            self.peer, len(plaintext) + TAG_SIZE, len(plaintext)
        )
        self.close()
        return plaintext

    def run(self) -> bytes:
        """Run the whole flow and return the decrypted message."""
        self.connect()
        self.handshake()
        return self.receive_message()

    def close(self) -> None:
        """Release the channel and wipe keys. Idempotent."""
        if self._state in TERMINAL_STATES:
            return
        self._release()
        self._state = SessionState.CLOSED
        self._events.log_close(self.peer)

    def _fail(self, error: BaseException) -> None:
        failed_in = self._state
        self._release()
        self._state = SessionState.FAILED
        self._error = error
        self._events.log_failure(self.peer, error, state=failed_in.value)
        logger.debug("session with %s failed while %s", self.peer, failed_in.value)

    def _release(self) -> None:
        if self._keys is not None:
            self._keys.wipe()
        close_quietly(self._channel)
        self._channel = None

    def __enter__(self) -> 'ClientSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None and self._state not in TERMINAL_STATES:
            self._fail(exc)
        else:
            self.close()


def run_client(config: ClientConfig,
               connector: Optional[Connector] = None,
               event_logger: Optional[EventLogger] = None) -> bytes:
    """Connect, exchange keys and return the one decrypted message."""
    with ClientSession(config, connector, event_logger) as session:
        return session.run()
