"""
Security tests for kxchannel.

Tests specifically for security-related scenarios:
- Bit flips in nonce, ciphertext and tag
- Untrusted length prefix
- Truncated frames
- Secret material kept out of errors and logs
"""

import os
import struct

import pytest

from kxchannel.core_crypto.secret_buffer import SecretBuffer
from kxchannel.errors import (
    AuthenticationError,
    ProtocolError,
    TransportError,
)
from kxchannel.integration.event_logger import EventLogger
from kxchannel.messaging import secure_channel
from kxchannel.messaging.secure_channel import (
    HEADER_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    ChaCha20Poly1305Cipher,
    decrypt_framed_message,
    encrypt_framed_message,
)

from .channels import ScriptedChannel


def _frame_bytes(key, plaintext=b"attack at dawn"):
    return encrypt_framed_message(ChaCha20Poly1305Cipher(key), plaintext).to_bytes()


def _flip(data: bytes, index: int, bit: int = 0) -> bytes:
    tampered = bytearray(data)
    tampered[index] ^= 1 << bit
    return bytes(tampered)


class TestModifiedFrames:
    """Security tests for ciphertext tampering."""

    def test_every_nonce_byte(self):
        key = os.urandom(32)
        frame = _frame_bytes(key)
        for i in range(HEADER_SIZE, HEADER_SIZE + NONCE_SIZE):
            channel = ScriptedChannel(_flip(frame, i, i % 8))
            with pytest.raises(AuthenticationError):
                decrypt_framed_message(channel, key)

    def test_every_ciphertext_byte(self):
        key = os.urandom(32)
        frame = _frame_bytes(key)
        for i in range(HEADER_SIZE + NONCE_SIZE, len(frame) - TAG_SIZE):
            channel = ScriptedChannel(_flip(frame, i, i % 8))
            with pytest.raises(AuthenticationError):
                decrypt_framed_message(channel, key)

    def test_every_tag_byte(self):
        key = os.urandom(32)
        frame = _frame_bytes(key)
        for i in range(len(frame) - TAG_SIZE, len(frame)):
            channel = ScriptedChannel(_flip(frame, i, 7 - i % 8))
            with pytest.raises(AuthenticationError):
                decrypt_framed_message(channel, key)

    def test_empty_plaintext_tag_flip(self):
        key = os.urandom(32)
        frame = _frame_bytes(key, b"")
        with pytest.raises(AuthenticationError):
            decrypt_framed_message(ScriptedChannel(_flip(frame, len(frame) - 1)), key)

    def test_wrong_key_rejected(self):
        frame = _frame_bytes(os.urandom(32))
        with pytest.raises(AuthenticationError):
            decrypt_framed_message(ScriptedChannel(frame), os.urandom(32))

    def test_swapped_direction_key_rejected(self):
        """A frame sealed with our own tx key must not open with rx."""
        rx = SecretBuffer(os.urandom(32))
        tx = SecretBuffer(os.urandom(32))
        frame = _frame_bytes(tx)
        with pytest.raises(AuthenticationError):
            decrypt_framed_message(ScriptedChannel(frame), rx)

    def test_authentication_error_is_distinct(self):
        assert not issubclass(AuthenticationError, ProtocolError)
        assert not issubclass(AuthenticationError, TransportError)
        assert AuthenticationError.kind == "authentication error"


class TestUntrustedLength:
    """The declared length is checked before the body is touched."""

    def test_over_maximum_rejected_before_body_read(self):
        channel = ScriptedChannel(struct.pack(">I", 2048) + os.urandom(4096))
        with pytest.raises(ProtocolError):
            decrypt_framed_message(channel, os.urandom(32), max_size=1024)
        assert channel.recv_calls == [HEADER_SIZE]
        assert channel.remaining == 4096

    def test_huge_length_rejected_without_allocation(self):
        channel = ScriptedChannel(b"\xff\xff\xff\xff")
        with pytest.raises(ProtocolError):
            decrypt_framed_message(channel, os.urandom(32))
        assert channel.recv_calls == [HEADER_SIZE]

    def test_length_shorter_than_tag_rejected(self):
        channel = ScriptedChannel(struct.pack(">I", TAG_SIZE - 1) + os.urandom(64))
        with pytest.raises(ProtocolError):
            decrypt_framed_message(channel, os.urandom(32))
        assert channel.recv_calls == [HEADER_SIZE]

    def test_message_at_configured_maximum(self):
        key = os.urandom(32)
        plaintext = os.urandom(1024 - TAG_SIZE)
        channel = ScriptedChannel(_frame_bytes(key, plaintext))
        assert decrypt_framed_message(channel, key, max_size=1024) == plaintext


class TestTruncatedFrames:
    """Frames cut short by the peer."""

    def test_short_nonce_is_protocol_error_without_decryption(self, monkeypatch):
        calls = []

        def record(self, nonce, ciphertext, associated_data=None):
            calls.append(nonce)
            raise AssertionError("decrypt must not be reached")

        monkeypatch.setattr(secure_channel.ChaCha20Poly1305Cipher, "decrypt", record)

        key = os.urandom(32)
        frame = _frame_bytes(key)
        length = frame[:HEADER_SIZE]
        nonce = frame[HEADER_SIZE:HEADER_SIZE + NONCE_SIZE]
        body = frame[HEADER_SIZE + NONCE_SIZE:]
        channel = ScriptedChannel(length + nonce[:-1] + body)

        with pytest.raises(ProtocolError):
            decrypt_framed_message(channel, key)
        assert calls == []

    def test_close_inside_nonce(self):
        channel = ScriptedChannel(struct.pack(">I", 32) + os.urandom(5))
        with pytest.raises(ProtocolError):
            decrypt_framed_message(channel, os.urandom(32))

    def test_close_inside_body(self):
        key = os.urandom(32)
        frame = _frame_bytes(key)
        with pytest.raises(ProtocolError):
            decrypt_framed_message(ScriptedChannel(frame[:-1]), key)

    def test_close_inside_header_is_connection_error(self):
        with pytest.raises(TransportError):
            decrypt_framed_message(ScriptedChannel(b"\x00\x00"), os.urandom(32))

    def test_truncation_keeps_cause(self):
        channel = ScriptedChannel(struct.pack(">I", 32) + os.urandom(5))
        with pytest.raises(ProtocolError) as excinfo:
            decrypt_framed_message(channel, os.urandom(32))
        assert isinstance(excinfo.value.__cause__, TransportError)


class TestSecretHygiene:
    """Key material never appears in errors or event logs."""

    def test_error_messages_do_not_contain_key(self):
        key = os.urandom(32)
        frame = _frame_bytes(key)
        with pytest.raises(AuthenticationError) as excinfo:
            decrypt_framed_message(ScriptedChannel(_flip(frame, len(frame) - 1)), key)
        assert key.hex() not in str(excinfo.value)
        assert excinfo.value.__cause__ is None

    def test_failure_event_contains_no_key(self):
        key = os.urandom(32)
        frame = _frame_bytes(key)
        events = EventLogger()
        try:
            decrypt_framed_message(ScriptedChannel(_flip(frame, len(frame) - 1)), key)
        except AuthenticationError as exc:
            events.log_failure("127.0.0.1:12345", exc, state="receiving")
        exported = events.export_log()
        assert key.hex() not in exported
        assert "authentication error" in exported
