"""
Unit tests for Core Crypto modules.

Tests:
- One-time backend initialization
- Fail-fast when the backend is not initialized
- SecretBuffer wiping and copy protection
"""

import copy
import os
import pickle

import pytest

from kxchannel.core_crypto import backend
from kxchannel.core_crypto.secret_buffer import SecretBuffer
from kxchannel.errors import InitializationError
from kxchannel.messaging.key_exchange import perform_client_handshake
from kxchannel.messaging.secure_channel import decrypt_framed_message

from .channels import ScriptedChannel


class TestBackendInitialization:
    """Tests for process-wide backend setup."""

    def test_initialized_for_tests(self):
        assert backend.is_initialized()

    def test_initialize_is_idempotent(self):
        backend.initialize()
        backend.initialize()
        assert backend.is_initialized()

    def test_require_initialized_fails_fast(self, monkeypatch):
        monkeypatch.setattr(backend, "_initialized", False)
        with pytest.raises(InitializationError):
            backend.require_initialized()

    def test_handshake_refuses_without_init(self, monkeypatch):
        """No key material is generated or sent before initialization."""
        monkeypatch.setattr(backend, "_initialized", False)
        channel = ScriptedChannel(os.urandom(32))
        with pytest.raises(InitializationError):
            perform_client_handshake(channel)
        assert channel.sent == b""
        assert channel.recv_calls == []

    def test_decrypt_refuses_without_init(self, monkeypatch):
        monkeypatch.setattr(backend, "_initialized", False)
        channel = ScriptedChannel(b"\x00\x00\x00\x20" + os.urandom(44))
        with pytest.raises(InitializationError):
            decrypt_framed_message(channel, os.urandom(32))
        assert channel.recv_calls == []

    def test_failed_self_test_leaves_backend_uninitialized(self, monkeypatch):
        def broken():
            raise ValueError("simulated backend fault")

        monkeypatch.setattr(backend, "_initialized", False)
        monkeypatch.setattr(backend, "_self_test", broken)
        with pytest.raises(InitializationError):
            backend.initialize()
        assert not backend.is_initialized()

    def test_initialization_error_kind(self):
        assert InitializationError.kind == "initialization error"


class TestSecretBuffer:
    """Tests for wipeable key buffers."""

    def test_holds_bytes(self):
        data = os.urandom(32)
        buf = SecretBuffer(data)
        assert len(buf) == 32
        assert bytes(buf.raw) == data

    def test_wipe_zeroes_contents(self):
        buf = SecretBuffer(os.urandom(32))
        live = buf.raw
        buf.wipe()
        assert buf.is_wiped
        assert live == bytearray(32)

    def test_access_after_wipe_rejected(self):
        buf = SecretBuffer(b"k" * 32)
        buf.wipe()
        with pytest.raises(ValueError):
            buf.raw

    def test_wipe_is_idempotent(self):
        buf = SecretBuffer(b"k" * 32)
        buf.wipe()
        buf.wipe()
        assert buf.is_wiped

    def test_context_manager_wipes(self):
        with SecretBuffer(os.urandom(32)) as buf:
            live = buf.raw
            assert not buf.is_wiped
        assert buf.is_wiped
        assert not any(live)

    def test_context_manager_wipes_on_error(self):
        buf = SecretBuffer(os.urandom(32))
        with pytest.raises(RuntimeError):
            with buf:
                raise RuntimeError("boom")
        assert buf.is_wiped

    def test_repr_hides_contents(self):
        data = bytes(range(32))
        buf = SecretBuffer(data)
        assert data.hex() not in repr(buf)
        assert "32 bytes" in repr(buf)
        buf.wipe()
        assert "wiped" in repr(buf)

    def test_copy_refused(self):
        buf = SecretBuffer(os.urandom(32))
        with pytest.raises(TypeError):
            copy.copy(buf)
        with pytest.raises(TypeError):
            copy.deepcopy(buf)

    def test_pickle_refused(self):
        with pytest.raises(TypeError):
            pickle.dumps(SecretBuffer(os.urandom(32)))

    def test_equality(self):
        data = os.urandom(32)
        assert SecretBuffer(data) == SecretBuffer(data)
        assert SecretBuffer(data) != SecretBuffer(os.urandom(32))

    def test_wiped_buffer_compares_unequal(self):
        data = os.urandom(32)
        live = SecretBuffer(data)
        wiped = SecretBuffer(data)
        wiped.wipe()
        assert live != wiped
        assert wiped != live
        assert not (wiped == SecretBuffer(bytes(32)))

    def test_source_independent_of_buffer(self):
        """Wiping never touches the caller's original object."""
        data = bytearray(b"x" * 32)
        buf = SecretBuffer(data)
        buf.wipe()
        assert data == bytearray(b"x" * 32)
