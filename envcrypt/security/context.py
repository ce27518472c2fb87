"""Process-level context shared by the coordinator and the resolver."""

from typing import Dict, Optional

from structlog import get_logger

from ..config.settings import Settings
from ..core.error_handling import MissingKeyError
from .encryption_manager import EncryptionManager
from .key_generator import KeyGenerator
from .models import SecretKeyRecord
from .secret_file_manager import SecretFileManager

logger = get_logger(__name__)


class SecretContext:
    """
    Explicit holder of the collaborators and loaded secret keys.

    Built once at process start and passed to the EncryptionCoordinator and
    the CredentialResolver; nothing about environment secrets is kept at
    module level.
    """

    def __init__(
        self,
        settings: Settings,
        file_manager: SecretFileManager,
        encryption_manager: EncryptionManager,
        key_generator: Optional[KeyGenerator] = None,
    ) -> None:
        self.settings = settings
        self.file_manager = file_manager
        self.encryption_manager = encryption_manager
        self.key_generator = key_generator or KeyGenerator()
        self._records: Dict[str, SecretKeyRecord] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "SecretContext":
        file_manager = SecretFileManager(
            env_dir=settings.env_dir,
            secrets_dir=settings.secrets_dir,
            env_file_template=settings.env_file_template,
            secret_file_template=settings.secret_file_template,
        )
        return cls(settings, file_manager, EncryptionManager())

    def load_record(self, environment: str) -> SecretKeyRecord:
        """
        Return the live secret key of an environment.

        Raises:
            MissingKeyError: If no key is on record for the environment
        """
        record = self._records.get(environment)
        if record is not None:
            return record

        record = self.file_manager.read_secret_record(environment)
        if record is None:
            logger.error("No secret key on record", environment=environment)
            raise MissingKeyError(environment)

        self._records[environment] = record
        return record

    def remember(self, record: SecretKeyRecord) -> None:
        """Make a freshly persisted key the live key of its environment."""
        self._records[record.environment] = record

    def forget(self, environment: str) -> None:
        self._records.pop(environment, None)

    def close(self) -> None:
        self._records.clear()
        self.encryption_manager.close()
