"""Secret key generation for environment credential encryption."""

import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

from structlog import get_logger

from ..core.error_handling import GenerationError
from .models import SALT_LENGTH, SECRET_KEY_LENGTH, SecretKeyRecord, b64encode

logger = get_logger(__name__)


class KeyGenerator:
    """
    Produces fresh secret keys from the operating system CSPRNG.

    Each key carries 256 bits of entropy together with a random KDF salt,
    both encoded as URL-safe base64 so they can live in a line-oriented
    text file. Persisting the record is the caller's job.
    """

    def __init__(
        self,
        key_length: int = SECRET_KEY_LENGTH,
        salt_length: int = SALT_LENGTH,
        random_source: Optional[Callable[[int], bytes]] = None,
    ) -> None:
        if key_length < SECRET_KEY_LENGTH:
            raise ValueError(f"Key length must be at least {SECRET_KEY_LENGTH} bytes")
        if salt_length < SALT_LENGTH:
            raise ValueError(f"Salt length must be at least {SALT_LENGTH} bytes")
        self.key_length = key_length
        self.salt_length = salt_length
        self._random_source = random_source or secrets.token_bytes

    def _secure_random_bytes(self, length: int) -> bytes:
        try:
            data = self._random_source(length)
        except (NotImplementedError, OSError) as e:
            raise GenerationError(f"Secure random source not available: {e}") from e

        if not isinstance(data, bytes) or len(data) != length:
            raise GenerationError("Secure random source returned an unexpected number of bytes")
        return data

    def generate(self, environment: str) -> SecretKeyRecord:
        """
        Generate a new secret key record for an environment.

        Raises:
            GenerationError: If no secure random source is available
        """
        record = SecretKeyRecord(
            environment=environment,
            encoded_key=b64encode(self._secure_random_bytes(self.key_length)),
            salt=b64encode(self._secure_random_bytes(self.salt_length)),
            created_at=datetime.now(timezone.utc),
        )
        logger.debug(
            "Generated secret key",
            environment=environment,
            key_fingerprint=record.fingerprint,
            key_bits=self.key_length * 8,
        )
        return record
