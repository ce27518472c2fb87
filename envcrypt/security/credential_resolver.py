"""
Run-time credential lookup for the test-execution layer.

The test runner only ever asks one question: "give me the plaintext value of
field F for environment X". Locally the answer comes from decrypting the
environment file with the environment's secret key; in CI it comes from
``CI_<FIELD>`` process variables injected by the pipeline. A missing key is
always an error, never a reason to read the stored value as plaintext.
"""

import os
from typing import Mapping, Optional, Protocol, runtime_checkable

from structlog import get_logger

from ..config.settings import Settings
from ..core.error_handling import MalformedEnvelopeError, MissingFieldError
from .context import SecretContext
from .encryption_coordinator import field_binding
from .models import UserCredentials

logger = get_logger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    """Narrow interface consumed by the test-execution layer."""

    def resolve(self, environment: str, field_name: str) -> str:
        ...


class CredentialResolver:
    """Decrypts credential fields of local environment files."""

    def __init__(self, context: SecretContext) -> None:
        self.context = context

    def _stored_value(self, environment: str, field_name: str) -> str:
        paths = self.context.file_manager.locate(environment)
        values = self.context.file_manager.read(paths.env_file)
        if field_name not in values:
            raise MissingFieldError(
                f"Field '{field_name}' is not defined for environment '{environment}'",
                field=field_name,
            )
        return values[field_name]

    def _decrypt_stored(self, environment: str, field_name: str) -> str:
        stored = self._stored_value(environment, field_name)
        if not self.context.encryption_manager.is_envelope(stored):
            raise MalformedEnvelopeError(
                f"Field '{field_name}' of environment '{environment}' is not encrypted",
                context={"environment": environment, "field": field_name},
            )

        record = self.context.load_record(environment)
        plaintext = self.context.encryption_manager.decrypt(
            stored, record, associated_data=field_binding(environment, field_name)
        )
        logger.debug(
            "Resolved credential",
            environment=environment,
            field=field_name,
            key_fingerprint=record.fingerprint,
        )
        return plaintext

    def resolve(self, environment: str, field_name: str) -> str:
        """
        Return the plaintext of an encrypted field.

        Raises:
            MissingKeyError: If the environment has no secret key on record
            MissingFieldError: If the field is not defined
            MalformedEnvelopeError: If the stored value is not an envelope
            AuthenticationFailure: If the envelope does not verify
        """
        # Key lookup comes first so a missing key is reported as such
        self.context.load_record(environment)
        return self._decrypt_stored(environment, field_name)

    async def resolve_async(
        self, environment: str, field_name: str, timeout: Optional[float] = None
    ) -> str:
        """
        Resolve a field from inside an event loop.

        The expensive key derivation runs on a bounded executor with a
        timeout; the decryption afterwards hits the warm key cache.
        """
        record = self.context.load_record(environment)
        bound = timeout if timeout is not None else self.context.settings.kdf_timeout_seconds
        await self.context.encryption_manager.derive_key_bounded(record, bound)
        return self._decrypt_stored(environment, field_name)

    def resolve_value(self, environment: str, key: str) -> str:
        """
        Return a non-credential plaintext value such as ``API_BASE_URL``.

        Raises:
            MalformedEnvelopeError: If the value is encrypted; use resolve()
        """
        stored = self._stored_value(environment, key)
        if self.context.encryption_manager.is_envelope(stored):
            raise MalformedEnvelopeError(
                f"Value '{key}' of environment '{environment}' is encrypted; resolve it as a credential",
                context={"environment": environment, "field": key},
            )
        return stored.strip()

    def resolve_credentials(self, environment: str) -> UserCredentials:
        """Resolve and verify the username/password pair of an environment."""
        return resolve_credentials(self, environment, self.context.settings)


class CiEnvironmentCredentialProvider:
    """Reads credentials injected by the CI pipeline as ``CI_<FIELD>`` variables."""

    def __init__(self, prefix: str = "CI_", environ: Optional[Mapping[str, str]] = None) -> None:
        self.prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def variable_name(self, field_name: str) -> str:
        return f"{self.prefix}{field_name}"

    def resolve(self, environment: str, field_name: str) -> str:
        name = self.variable_name(field_name)
        value = (self._environ.get(name) or "").strip()
        if not value:
            raise MissingFieldError(
                f"Environment variable {name} is not set or is empty",
                field=field_name,
                context={"environment": environment},
            )
        return value


def resolve_credentials(
    provider: CredentialProvider, environment: str, settings: Settings
) -> UserCredentials:
    """Resolve the username/password pair through any provider and verify both are set."""
    credentials = UserCredentials(
        username=provider.resolve(environment, settings.username_field),
        password=provider.resolve(environment, settings.password_field),
    )
    if not credentials.username or not credentials.password:
        raise MissingFieldError(
            "Invalid credentials: missing username or password",
            field=settings.password_field if credentials.username else settings.username_field,
        )
    return credentials


def build_credential_provider(context: SecretContext) -> CredentialProvider:
    """
    Select the credential source for this process.

    The choice is made once from settings: CI variables when running in CI,
    decryption of local environment files otherwise.
    """
    if context.settings.running_in_ci:
        logger.info("Using CI credential source", prefix=context.settings.ci_variable_prefix)
        return CiEnvironmentCredentialProvider(prefix=context.settings.ci_variable_prefix)
    return CredentialResolver(context)
