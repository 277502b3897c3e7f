# kxchannel
"""
Confidential client channel over a plain byte stream.

- Ephemeral X25519 key exchange with crypto_kx style rx/tx session keys
- One length-prefixed ChaCha20-Poly1305 message per connection
- Explicit one-time crypto backend initialization

Call initialize() once per process before any other operation.
"""

from .core_crypto.backend import initialize, is_initialized
from .errors import (
    KXChannelError,
    TransportError,
    ConnectionClosedError,
    HandshakeError,
    ProtocolError,
    AuthenticationError,
    InitializationError,
)

__version__ = "1.0.0"

__all__ = [
    'initialize',
    'is_initialized',
    'KXChannelError',
    'TransportError',
    'ConnectionClosedError',
    'HandshakeError',
    'ProtocolError',
    'AuthenticationError',
    'InitializationError',
]
