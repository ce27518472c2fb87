"""
Operator workflows tying secret-key lifecycle to environment files.

Three modes run against exactly one environment:
- GENERATE_KEY: create and persist a new secret key, replacing any old one
- ENCRYPT: replace designated plaintext credentials with envelopes
- GENERATE_AND_ENCRYPT: GENERATE_KEY then ENCRYPT, in that order only

GENERATE_AND_ENCRYPT is not transactional. When ENCRYPT fails after a new key
was written, that new key is the live key and any retry must use it.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from structlog import get_logger

from ..core.error_handling import CredentialError, MissingFieldError
from .context import SecretContext
from .models import (
    SecretKeyRecord,
    WorkflowCommand,
    WorkflowMode,
    WorkflowResult,
    WorkflowState,
)

logger = get_logger(__name__)


def field_binding(environment: str, field_name: str) -> str:
    """Associated data tying a ciphertext to its environment and field slot."""
    return f"{environment}/{field_name}"


class EncryptionCoordinator:
    """Runs generate-key and encrypt workflows for named environments."""

    def __init__(self, context: SecretContext) -> None:
        self.context = context
        self._state = WorkflowState.IDLE
        self._handlers: Dict[WorkflowMode, Callable[[WorkflowCommand, WorkflowResult], None]] = {
            WorkflowMode.GENERATE_KEY: self._run_generate_key,
            WorkflowMode.ENCRYPT: self._run_encrypt,
            WorkflowMode.GENERATE_AND_ENCRYPT: self._run_generate_and_encrypt,
        }

    @property
    def state(self) -> WorkflowState:
        return self._state

    def run(self, command: WorkflowCommand) -> WorkflowResult:
        """
        Execute one workflow command.

        Returns:
            A COMPLETED result; partial success is never reported

        Raises:
            CredentialError: The typed failure, unchanged, after the
                coordinator has moved to FAILED
        """
        handler = self._handlers.get(command.mode)
        if handler is None:
            raise ValueError(f"Unsupported workflow mode: {command.mode!r}")

        result = WorkflowResult(
            command=command,
            state=WorkflowState.RUNNING,
            started_at=datetime.now(timezone.utc),
        )
        self._state = WorkflowState.RUNNING
        logger.info(
            "Workflow started",
            mode=command.mode.value,
            environment=command.environment,
        )

        try:
            self.context.file_manager.validate_environment(command.environment)
            handler(command, result)
        except CredentialError as e:
            self._state = WorkflowState.FAILED
            logger.error(
                "Workflow failed",
                mode=command.mode.value,
                environment=command.environment,
                error_type=type(e).__name__,
                error_code=e.error_code,
                error=e.message,
            )
            raise
        except Exception:
            self._state = WorkflowState.FAILED
            logger.exception(
                "Workflow failed unexpectedly",
                mode=command.mode.value,
                environment=command.environment,
            )
            raise

        result.state = WorkflowState.COMPLETED
        result.finished_at = datetime.now(timezone.utc)
        self._state = WorkflowState.COMPLETED
        logger.info(
            "Workflow completed",
            mode=command.mode.value,
            environment=command.environment,
            encrypted_fields=list(result.encrypted_fields),
            skipped_fields=list(result.skipped_fields),
        )
        return result

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def generate_key(self, environment: str) -> SecretKeyRecord:
        """
        Generate and persist a new secret key, overwriting any previous one.

        Replacing a key invalidates every ciphertext stored under the old key,
        so replacement is logged as a rotation.
        """
        file_manager = self.context.file_manager
        had_previous = file_manager.has_secret_record(environment)

        record = self.context.key_generator.generate(environment)
        # A failed write leaves whatever key is on disk as the live key
        self.context.forget(environment)
        file_manager.write_secret_record(record)
        self.context.remember(record)

        if had_previous:
            logger.warning(
                "Secret key rotated; values encrypted under the previous key are no longer decryptable",
                event_type="secret_key_rotated",
                environment=environment,
                key_fingerprint=record.fingerprint,
            )
        else:
            logger.info(
                "Secret key created",
                event_type="secret_key_created",
                environment=environment,
                key_fingerprint=record.fingerprint,
            )
        return record

    def encrypt(
        self, environment: str, fields: Optional[Sequence[str]] = None
    ) -> Tuple[List[str], List[str]]:
        """
        Encrypt the designated credential fields of an environment file in place.

        Every designated field is prepared before the file is touched, and the
        file is rewritten once, atomically. Non-designated lines stay as they are.

        Returns:
            (encrypted field names, field names already encrypted under the
            current key and left unchanged)

        Raises:
            FileAccessError: If the environment file is missing or unwritable
            MissingKeyError: If the environment has no secret key
            MissingFieldError: If a designated field is absent or empty
            AuthenticationFailure: If a field holds an envelope produced under
                another key
        """
        designated = list(fields) if fields else list(self.context.settings.credential_fields)
        paths = self.context.file_manager.locate(environment)
        values = self.context.file_manager.read(paths.env_file)
        record = self.context.load_record(environment)
        encryption_manager = self.context.encryption_manager

        current = self.context.file_manager.designated_values(values, designated)

        updates: Dict[str, str] = {}
        encrypted: List[str] = []
        skipped: List[str] = []
        for field_name, value in current.items():
            binding = field_binding(environment, field_name)
            if encryption_manager.is_envelope(value):
                # Verifies the existing envelope; a stale one raises
                encryption_manager.decrypt(value, record, associated_data=binding)
                skipped.append(field_name)
                continue
            if not value.strip():
                raise MissingFieldError(
                    f"Field '{field_name}' is empty in {paths.env_file.name}",
                    field=field_name,
                )
            updates[field_name] = encryption_manager.encrypt(
                value, record, associated_data=binding
            ).serialize()
            encrypted.append(field_name)

        if updates:
            self.context.file_manager.update(paths.env_file, updates)

        logger.info(
            "Encrypted environment credentials",
            environment=environment,
            key_fingerprint=record.fingerprint,
            encrypted_fields=encrypted,
            skipped_fields=skipped,
        )
        return encrypted, skipped

    def generate_and_encrypt(
        self, environment: str, fields: Optional[Sequence[str]] = None
    ) -> Tuple[SecretKeyRecord, List[str], List[str]]:
        """Rotate the key, then encrypt with the new key. Never the reverse."""
        record = self.generate_key(environment)
        encrypted, skipped = self.encrypt(environment, fields)
        return record, encrypted, skipped

    # ------------------------------------------------------------------
    # Dispatch targets
    # ------------------------------------------------------------------

    def _run_generate_key(self, command: WorkflowCommand, result: WorkflowResult) -> None:
        result.key_rotated = self.context.file_manager.has_secret_record(command.environment)
        record = self.generate_key(command.environment)
        result.key_fingerprint = record.fingerprint

    def _run_encrypt(self, command: WorkflowCommand, result: WorkflowResult) -> None:
        encrypted, skipped = self.encrypt(command.environment, command.fields)
        result.key_fingerprint = self.context.load_record(command.environment).fingerprint
        result.encrypted_fields = tuple(encrypted)
        result.skipped_fields = tuple(skipped)

    def _run_generate_and_encrypt(self, command: WorkflowCommand, result: WorkflowResult) -> None:
        self._run_generate_key(command, result)
        encrypted, skipped = self.encrypt(command.environment, command.fields)
        result.encrypted_fields = tuple(encrypted)
        result.skipped_fields = tuple(skipped)
