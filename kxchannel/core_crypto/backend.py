"""
Crypto Backend Initialization

The `cryptography` backend is process-wide state. It is initialized exactly
once, by an explicit call to initialize(), before any handshake or frame
operation runs. Core operations call require_initialized() and fail fast
with InitializationError instead of assuming the backend is usable.

initialize() also runs a short self-test of every primitive the protocol
needs:
- X25519 keypair generation and agreement
- BLAKE2b-512 hashing (session key split)
- ChaCha20-Poly1305 (IETF) encrypt/decrypt
"""

import logging
import os
import threading

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from ..errors import InitializationError

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_initialized = False


def _self_test() -> None:
    """Exercise each primitive once; raise on any mismatch."""
    alice = X25519PrivateKey.generate()
    bob = X25519PrivateKey.generate()
    if alice.exchange(bob.public_key()) != bob.exchange(alice.public_key()):
        raise InitializationError("X25519 self-test failed")

    digest = hashes.Hash(hashes.BLAKE2b(64))
    digest.update(b"kxchannel self-test")
    if len(digest.finalize()) != 64:
        raise InitializationError("BLAKE2b self-test failed")

    aead = ChaCha20Poly1305(ChaCha20Poly1305.generate_key())
    nonce = os.urandom(12)
    sealed = aead.encrypt(nonce, b"kxchannel self-test", None)
    if aead.decrypt(nonce, sealed, None) != b"kxchannel self-test":
        raise InitializationError("ChaCha20-Poly1305 self-test failed")


def initialize() -> None:
    """
    Initialize the crypto backend for this process.

    Safe to call more than once and from several threads; only the first
    successful call does any work. A failed attempt leaves the backend
    uninitialized so a later call can try again.

    Raises:
        InitializationError: If a required algorithm is unavailable or the
            self-test fails.
    """
    global _initialized
    with _lock:
        if _initialized:
            return
        try:
            default_backend()
            _self_test()
        except (UnsupportedAlgorithm, InvalidTag, ValueError) as exc:
            raise InitializationError(
                f"crypto backend unusable: {exc.__class__.__name__}"
            ) from exc
        _initialized = True
        logger.debug("crypto backend initialized")


def is_initialized() -> bool:
    """Whether initialize() has completed successfully."""
    return _initialized


def require_initialized() -> None:
    """Raise InitializationError unless initialize() has succeeded."""
    if not _initialized:
        raise InitializationError(
            "crypto backend not initialized; call kxchannel.initialize() first"
        )
