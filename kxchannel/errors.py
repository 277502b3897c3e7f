"""
Error taxonomy for kxchannel.

Every failure surfaced by the protocol core is one of the classes below.
Each carries a short ``kind`` label so diagnostic output can tell them apart
without printing anything derived from key material.

    KXChannelError
    ├── TransportError       (also a builtin ConnectionError)
    │   └── ConnectionClosedError
    ├── HandshakeError
    ├── ProtocolError
    ├── AuthenticationError
    └── InitializationError

None of these are retried anywhere in the library.
"""


class KXChannelError(Exception):
    """Base class for all kxchannel errors."""

    kind = "error"


class TransportError(KXChannelError, ConnectionError):
    """Connect failure, short read/write, unexpected close or I/O timeout."""

    kind = "connection error"


class ConnectionClosedError(TransportError):
    """Peer closed the stream before the expected bytes arrived."""


class HandshakeError(KXChannelError):
    """Key exchange rejected the peer key or produced a degenerate result."""

    kind = "handshake error"


class ProtocolError(KXChannelError):
    """Malformed message frame."""

    kind = "protocol error"


class AuthenticationError(KXChannelError):
    """AEAD tag did not verify (corruption or tampering, indistinguishably)."""

    kind = "authentication error"


class InitializationError(KXChannelError):
    """Crypto backend missing, unsupported or not yet initialized."""

    kind = "initialization error"


__all__ = [
    'KXChannelError',
    'TransportError',
    'ConnectionClosedError',
    'HandshakeError',
    'ProtocolError',
    'AuthenticationError',
    'InitializationError',
]
