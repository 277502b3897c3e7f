# Secure Messaging Module
"""
Key exchange and message framing:
- Ephemeral X25519 key agreement
- BLAKE2b-512 split into directional session keys (crypto_kx compatible)
- ChaCha20-Poly1305 (IETF) authenticated encryption

Message format: [ciphertext_len | nonce | ciphertext | tag]

Security features:
- Fresh keypair per connection, secret discarded after derivation
- Length prefix validated before any allocation
- Never reuse nonces
- No peer identity authentication (see key_exchange)
"""

from .key_exchange import (
    PUBLIC_KEY_SIZE,
    SESSION_KEY_SIZE,
    Role,
    EphemeralKeyPair,
    SessionKeys,
    derive_session_keys,
    perform_client_handshake,
    perform_server_handshake,
)
from .secure_channel import (
    NONCE_SIZE,
    TAG_SIZE,
    DEFAULT_MAX_MESSAGE_SIZE,
    FrameLength,
    MessageFrame,
    ChaCha20Poly1305Cipher,
    generate_nonce,
    read_frame,
    decrypt_framed_message,
    encrypt_framed_message,
    send_framed_message,
)

__all__ = [
    'PUBLIC_KEY_SIZE',
    'SESSION_KEY_SIZE',
    'Role',
    'EphemeralKeyPair',
    'SessionKeys',
    'derive_session_keys',
    'perform_client_handshake',
    'perform_server_handshake',
    'NONCE_SIZE',
    'TAG_SIZE',
    'DEFAULT_MAX_MESSAGE_SIZE',
    'FrameLength',
    'MessageFrame',
    'ChaCha20Poly1305Cipher',
    'generate_nonce',
    'read_frame',
    'decrypt_framed_message',
    'encrypt_framed_message',
    'send_framed_message',
]
