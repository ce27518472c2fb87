"""Data model for environment credential encryption."""

import base64
import binascii
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.error_handling import MalformedEnvelopeError

ENVELOPE_SCHEME = "enc"
ENVELOPE_VERSION = "v1"
ENVELOPE_SEPARATOR = ":"
NONCE_LENGTH = 12  # 96 bits for GCM
TAG_LENGTH = 16  # 128 bits
SECRET_KEY_LENGTH = 32  # 256 bits
SALT_LENGTH = 16  # 128 bits


def b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Strict URL-safe base64 decoding; rejects non-canonical input."""
    try:
        data = base64.b64decode(text.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as e:
        raise ValueError(f"invalid base64: {e}") from e
    if b64encode(data) != text:
        raise ValueError("non-canonical base64 encoding")
    return data


class SecretKeyRecord(BaseModel):
    """The one live secret key of an environment, with its KDF salt."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(..., min_length=1)
    encoded_key: str = Field(..., min_length=1)
    salt: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("encoded_key")
    @classmethod
    def _validate_key(cls, value: str) -> str:
        try:
            raw = b64decode(value)
        except ValueError as e:
            raise ValueError(f"SECRET_KEY is not valid base64: {e}") from e
        if len(raw) < SECRET_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY must carry at least {SECRET_KEY_LENGTH * 8} bits")
        return value

    @field_validator("salt")
    @classmethod
    def _validate_salt(cls, value: str) -> str:
        try:
            raw = b64decode(value)
        except ValueError as e:
            raise ValueError(f"KDF_SALT is not valid base64: {e}") from e
        if len(raw) < SALT_LENGTH:
            raise ValueError(f"KDF_SALT must be at least {SALT_LENGTH} bytes")
        return value

    @property
    def key_bytes(self) -> bytes:
        return b64decode(self.encoded_key)

    @property
    def salt_bytes(self) -> bytes:
        return b64decode(self.salt)

    @property
    def fingerprint(self) -> str:
        """Short digest that identifies the key in logs without revealing it."""
        return hashlib.sha256(self.encoded_key.encode("ascii")).hexdigest()[:12]

    def __repr__(self) -> str:
        return (
            f"SecretKeyRecord(environment={self.environment!r}, "
            f"fingerprint={self.fingerprint!r}, created_at={self.created_at.isoformat()!r})"
        )

    __str__ = __repr__


@dataclass(frozen=True)
class EncryptedField:
    """
    Immutable AES-GCM envelope for a single credential value.

    Serialized as ``enc:v1:<nonce>:<ciphertext>:<tag>`` with every part
    URL-safe base64 encoded, so it fits on one line of a KEY=VALUE file.
    """

    nonce: bytes
    ciphertext: bytes
    tag: bytes
    version: str = ENVELOPE_VERSION

    def __post_init__(self) -> None:
        if len(self.nonce) != NONCE_LENGTH:
            raise MalformedEnvelopeError(
                f"Nonce must be {NONCE_LENGTH} bytes, got {len(self.nonce)}"
            )
        if len(self.tag) != TAG_LENGTH:
            raise MalformedEnvelopeError(
                f"Authentication tag must be {TAG_LENGTH} bytes, got {len(self.tag)}"
            )
        if self.version != ENVELOPE_VERSION:
            raise MalformedEnvelopeError(f"Unsupported envelope version: {self.version!r}")

    def serialize(self) -> str:
        return ENVELOPE_SEPARATOR.join(
            [
                ENVELOPE_SCHEME,
                self.version,
                b64encode(self.nonce),
                b64encode(self.ciphertext),
                b64encode(self.tag),
            ]
        )

    @classmethod
    def parse(cls, text: str) -> "EncryptedField":
        """
        Parse a stored envelope string.

        Raises:
            MalformedEnvelopeError: If the string is not a well-formed envelope
        """
        if not isinstance(text, str):
            raise MalformedEnvelopeError("Envelope must be a string")

        parts = text.strip().split(ENVELOPE_SEPARATOR)
        if len(parts) != 5 or parts[0] != ENVELOPE_SCHEME:
            raise MalformedEnvelopeError(
                "Value is not an envelope of the form enc:<version>:<nonce>:<ciphertext>:<tag>"
            )

        _, version, nonce, ciphertext, tag = parts
        if version != ENVELOPE_VERSION:
            raise MalformedEnvelopeError(f"Unsupported envelope version: {version!r}")

        try:
            return cls(
                nonce=b64decode(nonce),
                ciphertext=b64decode(ciphertext),
                tag=b64decode(tag),
                version=version,
            )
        except ValueError as e:
            raise MalformedEnvelopeError(f"Envelope part is not valid base64: {e}") from e

    def __str__(self) -> str:
        return self.serialize()


def is_envelope(value: Optional[str]) -> bool:
    """
    Whether a stored value is a well-formed envelope.

    A plaintext that merely starts with ``enc:`` is not an envelope and can
    still be encrypted.
    """
    if not isinstance(value, str):
        return False
    try:
        EncryptedField.parse(value)
    except MalformedEnvelopeError:
        return False
    return True


class WorkflowMode(Enum):
    """Operator workflow modes."""

    GENERATE_KEY = "generate-key"
    ENCRYPT = "encrypt"
    GENERATE_AND_ENCRYPT = "generate-and-encrypt"


class WorkflowState(Enum):
    """Lifecycle of a coordinator run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class WorkflowCommand:
    """A workflow mode bound to exactly one environment."""

    mode: WorkflowMode
    environment: str
    fields: Optional[Tuple[str, ...]] = None

    @classmethod
    def generate_key(cls, environment: str) -> "WorkflowCommand":
        return cls(WorkflowMode.GENERATE_KEY, environment)

    @classmethod
    def encrypt(cls, environment: str, fields: Optional[Tuple[str, ...]] = None) -> "WorkflowCommand":
        return cls(WorkflowMode.ENCRYPT, environment, fields)

    @classmethod
    def generate_and_encrypt(
        cls, environment: str, fields: Optional[Tuple[str, ...]] = None
    ) -> "WorkflowCommand":
        return cls(WorkflowMode.GENERATE_AND_ENCRYPT, environment, fields)


@dataclass
class WorkflowResult:
    """Outcome of a completed coordinator run."""

    command: WorkflowCommand
    state: WorkflowState
    started_at: datetime
    finished_at: Optional[datetime] = None
    key_fingerprint: Optional[str] = None
    key_rotated: bool = False  # a previous key was replaced
    encrypted_fields: Tuple[str, ...] = field(default_factory=tuple)
    skipped_fields: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class EnvironmentPaths:
    """File locations belonging to one environment."""

    environment: str
    env_file: Path
    secret_file: Path


@dataclass(frozen=True)
class UserCredentials:
    """Username/password pair handed to the test-execution layer."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"UserCredentials(username={self.username!r}, password='***')"
