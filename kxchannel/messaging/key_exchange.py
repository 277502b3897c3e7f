"""
Key Exchange Module

Ephemeral X25519 key agreement producing one session key per direction.

Wire exchange (client initiates):
    client -> server: client public key (32 bytes, raw)
    server -> client: server public key (32 bytes, raw)

Session key split (libsodium crypto_kx compatible):
    q = X25519(own secret, peer public)
    h = BLAKE2b-512(q || client_pk || server_pk)
    client: rx = h[0:32], tx = h[32:64]
    server: tx = h[0:32], rx = h[32:64]

so client.rx == server.tx and client.tx == server.rx.

Trust boundary: neither side authenticates the other. A passive eavesdropper
learns nothing, but an active attacker who replaces the public keys in
transit can sit in the middle. Layer a signature over the transcript on top
of this module before relying on peer identity.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Union

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)

from ..core_crypto.backend import require_initialized
from ..core_crypto.secret_buffer import SecretBuffer
from ..errors import HandshakeError
from ..transport.stream_io import Channel, read_exact, write_all

logger = logging.getLogger(__name__)


# Constants
PUBLIC_KEY_SIZE = 32    # X25519 public key
SECRET_KEY_SIZE = 32    # X25519 secret scalar
SESSION_KEY_SIZE = 32   # one ChaCha20-Poly1305 key per direction


class Role(Enum):
    """Which side of the exchange we are; decides the rx/tx split."""
    CLIENT = "client"
    SERVER = "server"


class EphemeralKeyPair:
    """
    Single-use X25519 keypair.

    The secret scalar stays inside the `cryptography` key object and is
    never exported. discard() drops the last reference to it.
    """

    def __init__(self, private_key: X25519PrivateKey):
        self._private_key = private_key
        self._public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )

    @classmethod
    def generate(cls) -> 'EphemeralKeyPair':
        """Generate a fresh keypair from the OS CSPRNG."""
        return cls(X25519PrivateKey.generate())

    @property
    def public_bytes(self) -> bytes:
        """Raw 32-byte public key, safe to transmit."""
        return self._public_bytes

    @property
    def is_discarded(self) -> bool:
        return self._private_key is None

    def exchange(self, peer_public_key: X25519PublicKey) -> bytes:
        """
        Compute the raw X25519 shared point with the peer.

        Raises:
            HandshakeError: If the keypair was discarded or the peer key is
                rejected (e.g. a low-order point)
        """
        if self._private_key is None:
            raise HandshakeError("ephemeral keypair already discarded")
        try:
            return self._private_key.exchange(peer_public_key)
        except ValueError as exc:
            raise HandshakeError("peer public key rejected by X25519") from exc

    def discard(self) -> None:
        """Forget the secret key. Idempotent."""
        self._private_key = None

    def __repr__(self) -> str:
        state = "discarded" if self.is_discarded else "live"
        return f"EphemeralKeyPair(public={self._public_bytes.hex()}, {state})"


@dataclass(eq=False)
class SessionKeys:
    """
    Directional session keys for one connection.

    rx decrypts what the peer sends, tx encrypts what we send.
    """
    rx: SecretBuffer
    tx: SecretBuffer

    @property
    def is_wiped(self) -> bool:
        return self.rx.is_wiped and self.tx.is_wiped

    def __iter__(self):
        # rx, tx = keys
        return iter((self.rx, self.tx))

    def wipe(self) -> None:
        """Zero both keys."""
        self.rx.wipe()
        self.tx.wipe()

    def __enter__(self) -> 'SessionKeys':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()


def load_peer_public_key(data: Union[bytes, bytearray]) -> X25519PublicKey:
    """
    Parse an untrusted raw public key received from the peer.

    Raises:
        HandshakeError: If the key has the wrong size or is unparseable
    """
    if len(data) != PUBLIC_KEY_SIZE:
        raise HandshakeError(
            f"peer public key must be {PUBLIC_KEY_SIZE} bytes, got {len(data)}"
        )
    try:
        return X25519PublicKey.from_public_bytes(bytes(data))
    except ValueError as exc:
        raise HandshakeError("peer public key is malformed") from exc


def derive_session_keys(keypair: EphemeralKeyPair,
                        peer_public: Union[bytes, bytearray],
                        role: Role) -> SessionKeys:
    """
    Derive the (rx, tx) pair from our keypair and the peer's public key.

    Args:
        keypair: Our ephemeral keypair
        peer_public: Raw public key received from the peer
        role: Role.CLIENT if we initiated the connection

    Returns:
        SessionKeys

    Raises:
        HandshakeError: If the peer key is invalid or the shared point is
            degenerate (all zero)
    """
    require_initialized()
    peer_key = load_peer_public_key(peer_public)

    shared = bytearray(keypair.exchange(peer_key))
    digest_out = bytearray()
    try:
        # All-zero shared point: peer sent a low-order point
        if not any(shared):
            raise HandshakeError("key exchange produced a degenerate shared secret")

        if role is Role.CLIENT:
            client_pk, server_pk = keypair.public_bytes, bytes(peer_public)
        else:
            client_pk, server_pk = bytes(peer_public), keypair.public_bytes

        digest = hashes.Hash(hashes.BLAKE2b(64))
        digest.update(shared)
        digest.update(client_pk)
        digest.update(server_pk)
        digest_out = bytearray(digest.finalize())

        first = SecretBuffer(digest_out[:SESSION_KEY_SIZE])
        second = SecretBuffer(digest_out[SESSION_KEY_SIZE:])
    finally:
        for buf in (shared, digest_out):
            for i in range(len(buf)):
                buf[i] = 0

    if role is Role.CLIENT:
        return SessionKeys(rx=first, tx=second)
    return SessionKeys(rx=second, tx=first)


def perform_client_handshake(channel: Channel) -> SessionKeys:
    """
    Run the client side of the key exchange over a connected channel.

    Sends our public key, reads the server's, derives the session keys. The
    ephemeral secret is discarded before returning, whether or not the
    handshake succeeded.

    Raises:
        InitializationError: If the crypto backend was not initialized
        TransportError: If the public key exchange I/O fails
        HandshakeError: If derivation rejects the server's key
    """
    require_initialized()
    keypair = EphemeralKeyPair.generate()
    try:
        write_all(channel, keypair.public_bytes)
        server_public = read_exact(channel, PUBLIC_KEY_SIZE)
        keys = derive_session_keys(keypair, server_public, Role.CLIENT)
    finally:
        keypair.discard()
    logger.debug("client key exchange complete")
    return keys


def perform_server_handshake(channel: Channel) -> SessionKeys:
    """
    Mirror of perform_client_handshake for the accepting side.

    Reads the client's public key first, then sends ours.
    """
    require_initialized()
    keypair = EphemeralKeyPair.generate()
    try:
        client_public = read_exact(channel, PUBLIC_KEY_SIZE)
        write_all(channel, keypair.public_bytes)
        keys = derive_session_keys(keypair, client_public, Role.SERVER)
    finally:
        keypair.discard()
    logger.debug("server key exchange complete")
    return keys
