"""
Secure Message Codec

Frames, authenticates and decrypts messages with one directional session key.

Cipher: ChaCha20-Poly1305 (IETF variant, RFC 8439), no associated data.

Frame format (big-endian):
    [ciphertext_len (4) | nonce (12) | ciphertext + tag (ciphertext_len)]

ciphertext_len counts the trailing 16-byte Poly1305 tag, so the recovered
plaintext is always ciphertext_len - 16 bytes.

Security rules:
- The declared length is untrusted and is checked against a maximum before
  anything is sized or read from it.
- A nonce must never repeat under the same key. Senders use random 96-bit
  nonces and each cipher instance also refuses nonces it has already used.
- A failed tag check raises AuthenticationError and returns nothing;
  corruption and tampering are not distinguished.
"""

import logging
import secrets
import struct
from dataclasses import dataclass
from typing import Optional, Set, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from ..core_crypto.backend import require_initialized
from ..core_crypto.secret_buffer import SecretBuffer
from ..errors import AuthenticationError, ConnectionClosedError, ProtocolError
from ..transport.stream_io import Channel, read_exact, write_all

logger = logging.getLogger(__name__)


# Constants
KEY_SIZE = 32           # 256-bit ChaCha20 key
NONCE_SIZE = 12         # 96-bit IETF nonce
TAG_SIZE = 16           # 128-bit Poly1305 tag
LENGTH_PREFIX = struct.Struct('>I')
HEADER_SIZE = LENGTH_PREFIX.size

# Largest ciphertext (tag included) accepted from a peer
DEFAULT_MAX_MESSAGE_SIZE = 16 * 1024 * 1024  # 16 MiB

KeyMaterial = Union[SecretBuffer, bytes, bytearray]


def generate_nonce() -> bytes:
    """
    Generate a random 96-bit nonce.

    CRITICAL: Never reuse a nonce with the same key!
    """
    return secrets.token_bytes(NONCE_SIZE)


@dataclass(frozen=True)
class FrameLength:
    """Ciphertext length taken from a frame header, already bounds-checked."""
    value: int

    @classmethod
    def from_header(cls, header: bytes,
                    max_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> 'FrameLength':
        """
        Parse and validate the 4-byte length prefix.

        Raises:
            ProtocolError: If the header is not 4 bytes, the length exceeds
                max_size, or it is too short to hold the tag
        """
        if len(header) != HEADER_SIZE:
            raise ProtocolError(f"frame header must be {HEADER_SIZE} bytes")
        (length,) = LENGTH_PREFIX.unpack(header)
        if length > max_size:
            raise ProtocolError(
                f"declared ciphertext length {length} exceeds maximum {max_size}"
            )
        if length < TAG_SIZE:
            raise ProtocolError(
                f"declared ciphertext length {length} is shorter than the "
                f"{TAG_SIZE}-byte tag"
            )
        return cls(length)

    @property
    def plaintext_size(self) -> int:
        return self.value - TAG_SIZE


@dataclass(frozen=True)
class MessageFrame:
    """
    One wire frame.

    Format: [ciphertext_len | nonce | ciphertext + tag]
    """
    nonce: bytes        # 12 bytes
    ciphertext: bytes   # includes the 16-byte tag

    def __post_init__(self):
        if len(self.nonce) != NONCE_SIZE:
            raise ProtocolError(
                f"nonce must be {NONCE_SIZE} bytes, got {len(self.nonce)}"
            )
        if len(self.ciphertext) < TAG_SIZE:
            raise ProtocolError("ciphertext is shorter than the tag")

    def to_bytes(self) -> bytes:
        """Serialize to the wire format."""
        return LENGTH_PREFIX.pack(len(self.ciphertext)) + self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, data: bytes,
                   max_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> 'MessageFrame':
        """
        Parse exactly one complete frame from a buffer.

        Raises:
            ProtocolError: If the buffer is not exactly one valid frame
        """
        length = FrameLength.from_header(data[:HEADER_SIZE], max_size)
        expected = HEADER_SIZE + NONCE_SIZE + length.value
        if len(data) != expected:
            raise ProtocolError(f"frame must be {expected} bytes, got {len(data)}")
        nonce = data[HEADER_SIZE:HEADER_SIZE + NONCE_SIZE]
        return cls(nonce, data[HEADER_SIZE + NONCE_SIZE:])


class ChaCha20Poly1305Cipher:
    """
    ChaCha20-Poly1305 AEAD bound to one session key.

    Provides confidentiality, integrity, and authenticity.
    """

    def __init__(self, key: KeyMaterial):
        """
        Initialize with a session key.

        Args:
            key: 32-byte key, preferably a SecretBuffer
        """
        raw = key.raw if isinstance(key, SecretBuffer) else key
        if len(raw) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes")
        self._aead = ChaCha20Poly1305(raw)
        self._used_nonces: Set[bytes] = set()

    def encrypt(self, plaintext: bytes, nonce: Optional[bytes] = None,
                associated_data: Optional[bytes] = None) -> Tuple[bytes, bytes]:
        """
        Encrypt plaintext.

        Args:
            plaintext: Data to encrypt
            nonce: Explicit nonce; a fresh random one is used if omitted
            associated_data: Optional authenticated but not encrypted data

        Returns:
            Tuple of (nonce, ciphertext + tag)

        Raises:
            ValueError: If an explicit nonce was already used by this cipher
        """
        if nonce is None:
            nonce = generate_nonce()
            while nonce in self._used_nonces:
                nonce = generate_nonce()
        elif len(nonce) != NONCE_SIZE:
            raise ValueError(f"Nonce must be {NONCE_SIZE} bytes")
        elif nonce in self._used_nonces:
            raise ValueError("Nonce reuse refused")
        self._used_nonces.add(nonce)

        return nonce, self._aead.encrypt(nonce, plaintext, associated_data)

    def decrypt(self, nonce: bytes, ciphertext: bytes,
                associated_data: Optional[bytes] = None) -> bytes:
        """
        Verify and decrypt.

        Args:
            nonce: 12-byte nonce
            ciphertext: Ciphertext with the trailing tag
            associated_data: Optional associated data

        Returns:
            Plaintext

        Raises:
            ProtocolError: If the nonce has the wrong size
            AuthenticationError: If the tag does not verify
        """
        if len(nonce) != NONCE_SIZE:
            raise ProtocolError(f"nonce must be {NONCE_SIZE} bytes")
        try:
            return self._aead.decrypt(nonce, ciphertext, associated_data)
        except InvalidTag:
            raise AuthenticationError("message authentication failed") from None


def read_frame(channel: Channel,
               max_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> MessageFrame:
    """
    Read one frame from the channel.

    The length prefix is validated before the nonce or body is read. Once a
    valid header has arrived, a peer close before the rest of the frame is a
    malformed frame (ProtocolError); any other I/O failure stays a
    TransportError.
    """
    header = read_exact(channel, HEADER_SIZE)
    length = FrameLength.from_header(header, max_size)
    try:
        nonce = read_exact(channel, NONCE_SIZE)
        ciphertext = read_exact(channel, length.value)
    except ConnectionClosedError as exc:
        raise ProtocolError(
            f"frame truncated: expected {NONCE_SIZE + length.value} bytes "
            f"after the header"
        ) from exc
    return MessageFrame(nonce, ciphertext)


def decrypt_framed_message(channel: Channel, rx_key: KeyMaterial,
                           max_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> bytes:
    """
    Receive and decrypt one framed message.

    Args:
        channel: Connected channel positioned at a frame boundary
        rx_key: Our receive key (the peer's tx key)
        max_size: Largest ciphertext length accepted

    Returns:
        Plaintext bytes

    Raises:
        InitializationError: If the crypto backend was not initialized
        TransportError: If the channel fails before a header is read
        ProtocolError: If the frame is malformed or truncated
        AuthenticationError: If the frame does not authenticate
    """
    require_initialized()
    frame = read_frame(channel, max_size)
    cipher = ChaCha20Poly1305Cipher(rx_key)
    plaintext = cipher.decrypt(frame.nonce, frame.ciphertext)
    logger.debug("decrypted frame of %d bytes", len(frame.ciphertext))
    return plaintext


def encrypt_framed_message(tx_key: Union[ChaCha20Poly1305Cipher, KeyMaterial],
                           plaintext: bytes,
                           nonce: Optional[bytes] = None,
                           max_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> MessageFrame:
    """
    Encrypt plaintext into a frame.

    Args:
        tx_key: Our sending key, or a cipher already bound to it. Pass the
            same cipher for every message sent under one key so its nonce
            tracking covers the whole session.
        plaintext: Data to send
        nonce: Explicit 12-byte nonce; a fresh random one if omitted
        max_size: Largest ciphertext (tag included) the peer accepts

    Raises:
        ProtocolError: If the resulting ciphertext would exceed max_size
        ValueError: If an explicit nonce is malformed or was already used
    """
    require_initialized()
    if len(plaintext) + TAG_SIZE > max_size:
        raise ProtocolError(
            f"message of {len(plaintext)} bytes exceeds maximum frame size {max_size}"
        )
    if isinstance(tx_key, ChaCha20Poly1305Cipher):
        cipher = tx_key
    else:
        cipher = ChaCha20Poly1305Cipher(tx_key)
    nonce, ciphertext = cipher.encrypt(plaintext, nonce)
    return MessageFrame(nonce, ciphertext)


def send_framed_message(channel: Channel,
                        tx_key: Union[ChaCha20Poly1305Cipher, KeyMaterial],
                        plaintext: bytes,
                        max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
                        nonce: Optional[bytes] = None) -> MessageFrame:
    """Encrypt plaintext and write the frame to the channel."""
    frame = encrypt_framed_message(tx_key, plaintext, nonce, max_size)
    write_all(channel, frame.to_bytes())
    return frame
