"""
Authenticated encryption of individual credential fields.

This module provides field-level encryption for environment files with the
following properties:
- AES-256-GCM authenticated encryption, tag verified before any plaintext
  is returned
- Argon2id key derivation (memory-hard) from the stored secret and its
  persisted salt
- A fresh 96-bit random nonce for every encryption, never a counter
- Optional associated data binding a ciphertext to its field slot
- Timeout-guarded derivation for use inside concurrent processes
"""

import asyncio
import hashlib
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Final, Optional, Union

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.argon2 import Argon2id
from structlog import get_logger

from ..core.error_handling import (
    AuthenticationFailure,
    KeyDerivationError,
    KeyDerivationTimeout,
    MalformedEnvelopeError,
)
from .models import NONCE_LENGTH, TAG_LENGTH, EncryptedField, SecretKeyRecord, is_envelope

logger = get_logger(__name__)

# Argon2id cost parameters. These are fixed so that a key derived once stays
# reproducible without persisting parameters; changing them requires a new
# envelope version.
ARGON2_ITERATIONS: Final[int] = 3
ARGON2_LANES: Final[int] = 4
ARGON2_MEMORY_COST_KIB: Final[int] = 64 * 1024  # 64 MiB
DERIVED_KEY_LENGTH: Final[int] = 32  # AES-256

SecretInput = Union[str, bytes]


def _as_bytes(value: SecretInput) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class EncryptionManager:
    """Derives working keys and encrypts/decrypts credential fields."""

    def __init__(self) -> None:
        self._key_cache: Dict[bytes, bytes] = {}
        self._cache_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    # ------------------------------------------------------------------
    # Key derivation
    # ------------------------------------------------------------------

    @staticmethod
    def _cache_key(secret: bytes, salt: bytes) -> bytes:
        return hashlib.sha256(len(secret).to_bytes(4, "big") + secret + salt).digest()

    def derive_key(self, secret: SecretInput, salt: SecretInput) -> bytes:
        """
        Stretch a stored secret into a 256-bit AES key with Argon2id.

        The salt must be the one persisted with the secret; deriving with any
        other salt yields a different key and makes prior ciphertexts
        undecryptable.

        Raises:
            KeyDerivationError: If derivation fails or is unsupported
        """
        secret_bytes = _as_bytes(secret)
        salt_bytes = _as_bytes(salt)
        if not secret_bytes:
            raise KeyDerivationError("Secret must not be empty")

        cache_key = self._cache_key(secret_bytes, salt_bytes)
        with self._cache_lock:
            cached = self._key_cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            kdf = Argon2id(
                salt=salt_bytes,
                length=DERIVED_KEY_LENGTH,
                iterations=ARGON2_ITERATIONS,
                lanes=ARGON2_LANES,
                memory_cost=ARGON2_MEMORY_COST_KIB,
            )
            derived = kdf.derive(secret_bytes)
        except (UnsupportedAlgorithm, ValueError, TypeError) as e:
            raise KeyDerivationError(f"Key derivation failed: {e}") from e

        if len(derived) != DERIVED_KEY_LENGTH:
            raise KeyDerivationError(f"Invalid derived key length: {len(derived)}")

        with self._cache_lock:
            self._key_cache[cache_key] = derived
        logger.debug("Derived working key", kdf="argon2id", memory_kib=ARGON2_MEMORY_COST_KIB)
        return derived

    def _working_key(self, record: SecretKeyRecord) -> bytes:
        return self.derive_key(record.key_bytes, record.salt_bytes)

    async def derive_key_bounded(self, record: SecretKeyRecord, timeout: float) -> bytes:
        """
        Derive the working key of a record off the event loop, with a time bound.

        The derivation runs on a dedicated single-worker executor so that at
        most one expensive derivation competes with other workers at a time.

        Raises:
            KeyDerivationTimeout: If the derivation does not finish in time
            KeyDerivationError: If the derivation fails
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="envcrypt-kdf")

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            self._executor, self.derive_key, record.key_bytes, record.salt_bytes
        )
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Key derivation timed out",
                environment=record.environment,
                timeout_seconds=timeout,
            )
            raise KeyDerivationTimeout(
                f"Key derivation for '{record.environment}' exceeded {timeout:.1f}s",
                context={"environment": record.environment, "timeout_seconds": timeout},
            ) from None

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def encrypt(
        self,
        plaintext: str,
        record: SecretKeyRecord,
        associated_data: Optional[str] = None,
    ) -> EncryptedField:
        """
        Encrypt one field value with AES-256-GCM.

        Args:
            plaintext: Value to protect
            record: Secret key of the environment
            associated_data: Optional binding (e.g. the field name) that must
                be supplied again on decryption

        Returns:
            A new envelope with a freshly drawn random nonce
        """
        if not isinstance(plaintext, str):
            raise TypeError("plaintext must be a string")

        aesgcm = AESGCM(self._working_key(record))
        nonce = os.urandom(NONCE_LENGTH)
        aad = associated_data.encode("utf-8") if associated_data is not None else None

        ciphertext_and_tag = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), aad)
        return EncryptedField(
            nonce=nonce,
            ciphertext=ciphertext_and_tag[:-TAG_LENGTH],
            tag=ciphertext_and_tag[-TAG_LENGTH:],
        )

    def decrypt(
        self,
        field: Union[EncryptedField, str],
        record: SecretKeyRecord,
        associated_data: Optional[str] = None,
    ) -> str:
        """
        Verify and decrypt one envelope.

        Raises:
            MalformedEnvelopeError: If a string does not parse into an envelope
            AuthenticationFailure: If the tag does not verify under this key
                and associated data
        """
        envelope = field if isinstance(field, EncryptedField) else EncryptedField.parse(field)

        aesgcm = AESGCM(self._working_key(record))
        aad = associated_data.encode("utf-8") if associated_data is not None else None

        try:
            plaintext = aesgcm.decrypt(envelope.nonce, envelope.ciphertext + envelope.tag, aad)
        except InvalidTag:
            logger.warning(
                "Authentication tag verification failed",
                environment=record.environment,
                key_fingerprint=record.fingerprint,
            )
            raise AuthenticationFailure(
                "Authentication tag verification failed: wrong key, wrong field binding or tampered value",
                context={"environment": record.environment},
            ) from None

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEnvelopeError("Decrypted value is not valid UTF-8") from e

    @staticmethod
    def is_envelope(value: Optional[str]) -> bool:
        return is_envelope(value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        """Drop every cached working key."""
        with self._cache_lock:
            self._key_cache.clear()

    def close(self) -> None:
        self.clear_cache()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
