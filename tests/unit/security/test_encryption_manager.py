"""Tests for field-level authenticated encryption."""

import asyncio
import threading

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from envcrypt.core.error_handling import (
    AuthenticationFailure,
    KeyDerivationError,
    KeyDerivationTimeout,
    MalformedEnvelopeError,
)
from envcrypt.security.encryption_manager import EncryptionManager
from envcrypt.security.key_generator import KeyGenerator
from envcrypt.security.models import EncryptedField, SecretKeyRecord


def flip_bit(data: bytes, index: int = 0) -> bytes:
    buffer = bytearray(data)
    buffer[index] ^= 0x01
    return bytes(buffer)


@pytest.fixture(scope="module")
def manager():
    service = EncryptionManager()
    yield service
    service.close()


@pytest.fixture(scope="module")
def record() -> SecretKeyRecord:
    return KeyGenerator().generate("uat")


@pytest.fixture(scope="module")
def other_record() -> SecretKeyRecord:
    return KeyGenerator().generate("uat")


class TestKeyDerivation:
    """Test Argon2id key derivation."""

    def test_deterministic(self, manager, record):
        first = manager.derive_key(record.key_bytes, record.salt_bytes)
        manager.clear_cache()
        second = manager.derive_key(record.key_bytes, record.salt_bytes)

        assert first == second
        assert len(first) == 32

    def test_salt_changes_key(self, manager, record):
        key_a = manager.derive_key(record.key_bytes, b"a" * 16)
        key_b = manager.derive_key(record.key_bytes, b"b" * 16)
        assert key_a != key_b

    def test_empty_secret_rejected(self, manager):
        with pytest.raises(KeyDerivationError):
            manager.derive_key(b"", b"s" * 16)

    def test_short_salt_rejected(self, manager):
        with pytest.raises(KeyDerivationError):
            manager.derive_key(b"secret", b"short")

    def test_cache_hit_skips_derivation(self, manager, record, mocker):
        manager.derive_key(record.key_bytes, record.salt_bytes)
        argon = mocker.patch("envcrypt.security.encryption_manager.Argon2id")

        manager.derive_key(record.key_bytes, record.salt_bytes)

        argon.assert_not_called()


class TestEncryptDecrypt:
    """Test AES-GCM envelopes."""

    @settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(plaintext=st.text(max_size=256))
    def test_roundtrip(self, manager, record, plaintext):
        envelope = manager.encrypt(plaintext, record, associated_data="uat/TOKEN_PASSWORD")
        restored = manager.decrypt(
            envelope.serialize(), record, associated_data="uat/TOKEN_PASSWORD"
        )
        assert restored == plaintext

    def test_envelope_shape(self, manager, record):
        envelope = manager.encrypt("hunter2", record)

        assert isinstance(envelope, EncryptedField)
        assert len(envelope.nonce) == 12
        assert len(envelope.tag) == 16
        assert len(envelope.ciphertext) == len("hunter2")
        assert "hunter2" not in envelope.serialize()

    def test_nonces_are_unique(self, manager, record):
        nonces = {manager.encrypt("same value", record).nonce for _ in range(200)}
        assert len(nonces) == 200

    def test_same_plaintext_different_ciphertexts(self, manager, record):
        first = manager.encrypt("same value", record).serialize()
        second = manager.encrypt("same value", record).serialize()
        assert first != second

    def test_wrong_key_fails_authentication(self, manager, record, other_record):
        envelope = manager.encrypt("hunter2", record)

        with pytest.raises(AuthenticationFailure):
            manager.decrypt(envelope, other_record)

    def test_field_binding_enforced(self, manager, record):
        envelope = manager.encrypt("hunter2", record, associated_data="uat/TOKEN_PASSWORD")

        with pytest.raises(AuthenticationFailure):
            manager.decrypt(envelope, record, associated_data="uat/TOKEN_USERNAME")
        with pytest.raises(AuthenticationFailure):
            manager.decrypt(envelope, record)

    @pytest.mark.parametrize("part", ["nonce", "ciphertext", "tag"])
    def test_any_flipped_bit_fails_authentication(self, manager, record, part):
        envelope = manager.encrypt("hunter2", record)
        tampered = EncryptedField(
            nonce=flip_bit(envelope.nonce) if part == "nonce" else envelope.nonce,
            ciphertext=flip_bit(envelope.ciphertext) if part == "ciphertext" else envelope.ciphertext,
            tag=flip_bit(envelope.tag, 15) if part == "tag" else envelope.tag,
        )

        with pytest.raises(AuthenticationFailure):
            manager.decrypt(tampered.serialize(), record)

    def test_any_flipped_bit_in_stored_text_fails_closed(self, manager, record):
        stored = manager.encrypt("hunter2", record, associated_data="uat/TOKEN_PASSWORD").serialize()

        for index in range(len(stored)):
            for bit in range(7):
                tampered = stored[:index] + chr(ord(stored[index]) ^ (1 << bit)) + stored[index + 1:]
                with pytest.raises((AuthenticationFailure, MalformedEnvelopeError)):
                    manager.decrypt(tampered, record, associated_data="uat/TOKEN_PASSWORD")

    def test_malformed_envelope(self, manager, record):
        with pytest.raises(MalformedEnvelopeError):
            manager.decrypt("hunter2", record)
        with pytest.raises(MalformedEnvelopeError):
            manager.decrypt("enc:v1:AAAA:AAAA:AAAA", record)

    def test_authentication_failure_does_not_leak_plaintext(self, manager, record, other_record):
        envelope = manager.encrypt("top-secret-value", record)

        with pytest.raises(AuthenticationFailure) as exc_info:
            manager.decrypt(envelope, other_record)

        assert "top-secret-value" not in str(exc_info.value)
        assert exc_info.value.__cause__ is None

    def test_rejects_non_string_plaintext(self, manager, record):
        with pytest.raises(TypeError):
            manager.encrypt(b"bytes", record)

    def test_concurrent_encryption(self, manager, record):
        results = []

        def worker():
            for _ in range(20):
                envelope = manager.encrypt("value", record)
                results.append(manager.decrypt(envelope, record))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == ["value"] * 80


class TestBoundedDerivation:
    """Test timeout-guarded key derivation."""

    @pytest.mark.asyncio
    async def test_derive_within_bound(self, record):
        service = EncryptionManager()
        try:
            key = await service.derive_key_bounded(record, timeout=30.0)
            assert key == service.derive_key(record.key_bytes, record.salt_bytes)
        finally:
            service.close()

    @pytest.mark.asyncio
    async def test_timeout_raises(self, record, mocker):
        service = EncryptionManager()
        release = threading.Event()

        def slow_derive(secret, salt):
            release.wait(5)
            return b"\x00" * 32

        mocker.patch.object(service, "derive_key", side_effect=slow_derive)
        try:
            with pytest.raises(KeyDerivationTimeout) as exc_info:
                await service.derive_key_bounded(record, timeout=0.05)
            assert exc_info.value.exit_code == 9
        finally:
            release.set()
            service.close()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_cache(self, record):
        service = EncryptionManager()
        try:
            keys = await asyncio.gather(
                *(service.derive_key_bounded(record, timeout=60.0) for _ in range(3))
            )
            assert len(set(keys)) == 1
        finally:
            service.close()
