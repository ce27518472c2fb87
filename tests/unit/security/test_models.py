"""Tests for the envcrypt data model."""

import pytest
from pydantic import ValidationError

from envcrypt.core.error_handling import MalformedEnvelopeError
from envcrypt.security.models import (
    EncryptedField,
    SecretKeyRecord,
    UserCredentials,
    WorkflowCommand,
    WorkflowMode,
    b64decode,
    b64encode,
    is_envelope,
)

KEY = b64encode(bytes(range(32)))
SALT = b64encode(bytes(range(16)))


class TestBase64:
    """Test strict base64 helpers."""

    def test_url_safe_alphabet(self):
        assert b64encode(b"\xfb\xff") == "-_8="
        assert b64decode("-_8=") == b"\xfb\xff"

    @pytest.mark.parametrize("text", ["abc", "ab!=", "+/8=", "-_9="])
    def test_rejects_invalid_or_non_canonical(self, text):
        with pytest.raises(ValueError):
            b64decode(text)


class TestSecretKeyRecord:
    """Test the secret key record."""

    def test_valid_record(self):
        record = SecretKeyRecord(environment="uat", encoded_key=KEY, salt=SALT)

        assert record.key_bytes == bytes(range(32))
        assert record.salt_bytes == bytes(range(16))
        assert len(record.fingerprint) == 12

    def test_short_key_rejected(self):
        with pytest.raises(ValidationError):
            SecretKeyRecord(environment="uat", encoded_key=b64encode(b"x" * 16), salt=SALT)

    def test_short_salt_rejected(self):
        with pytest.raises(ValidationError):
            SecretKeyRecord(environment="uat", encoded_key=KEY, salt=b64encode(b"s" * 8))

    def test_repr_hides_key(self):
        record = SecretKeyRecord(environment="uat", encoded_key=KEY, salt=SALT)

        assert KEY not in repr(record)
        assert KEY not in str(record)
        assert record.fingerprint in repr(record)

    def test_record_is_immutable(self):
        record = SecretKeyRecord(environment="uat", encoded_key=KEY, salt=SALT)
        with pytest.raises(ValidationError):
            record.environment = "prod"


class TestEncryptedField:
    """Test envelope parsing and serialization."""

    def test_serialize_format(self):
        field = EncryptedField(nonce=b"\x00" * 12, ciphertext=b"data", tag=b"\x01" * 16)
        parts = field.serialize().split(":")

        assert parts[:2] == ["enc", "v1"]
        assert len(parts) == 5
        assert str(field) == field.serialize()

    def test_parse_serialized(self):
        field = EncryptedField(nonce=b"\x02" * 12, ciphertext=b"", tag=b"\x03" * 16)
        assert EncryptedField.parse(field.serialize()) == field

    @pytest.mark.parametrize(
        "text",
        [
            "plaintext",
            "enc:v1:only:three",
            "enc:v2:AAAAAAAAAAAAAAAA::AAAAAAAAAAAAAAAAAAAAAA==",
            "enc:v1:AAAA::AAAAAAAAAAAAAAAAAAAAAA==",
            "enc:v1:AAAAAAAAAAAAAAAA::AAAA",
            "enc:v1:AAAAAAAAAAAAAAAA:not base64!:AAAAAAAAAAAAAAAAAAAAAA==",
        ],
    )
    def test_parse_rejects_malformed(self, text):
        with pytest.raises(MalformedEnvelopeError):
            EncryptedField.parse(text)

    def test_wrong_lengths_rejected(self):
        with pytest.raises(MalformedEnvelopeError):
            EncryptedField(nonce=b"\x00" * 8, ciphertext=b"", tag=b"\x00" * 16)
        with pytest.raises(MalformedEnvelopeError):
            EncryptedField(nonce=b"\x00" * 12, ciphertext=b"", tag=b"\x00" * 12)

    def test_is_envelope(self):
        envelope = EncryptedField(nonce=b"\x00" * 12, ciphertext=b"x", tag=b"\x01" * 16).serialize()

        assert is_envelope(envelope)
        assert is_envelope(f"  {envelope}")
        assert not is_envelope("hunter2")
        assert not is_envelope(None)

    @pytest.mark.parametrize("text", ["enc:", "enc:v1:a:b:c", "enc:my-real-password"])
    def test_enc_prefixed_plaintext_is_not_an_envelope(self, text):
        assert not is_envelope(text)


class TestWorkflowCommand:
    """Test workflow command constructors."""

    def test_constructors(self):
        assert WorkflowCommand.generate_key("uat").mode == WorkflowMode.GENERATE_KEY
        assert WorkflowCommand.encrypt("uat").fields is None
        command = WorkflowCommand.generate_and_encrypt("uat", ("TOKEN_PASSWORD",))
        assert command.mode == WorkflowMode.GENERATE_AND_ENCRYPT
        assert command.fields == ("TOKEN_PASSWORD",)

    def test_credentials_repr_masks_password(self):
        credentials = UserCredentials(username="qa", password="hunter2")
        assert "hunter2" not in repr(credentials)
