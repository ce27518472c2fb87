"""Environment credential encryption."""

from .context import SecretContext
from .credential_resolver import (
    CiEnvironmentCredentialProvider,
    CredentialProvider,
    CredentialResolver,
    build_credential_provider,
    resolve_credentials,
)
from .encryption_coordinator import EncryptionCoordinator, field_binding
from .encryption_manager import EncryptionManager
from .key_generator import KeyGenerator
from .models import (
    EncryptedField,
    EnvironmentPaths,
    SecretKeyRecord,
    UserCredentials,
    WorkflowCommand,
    WorkflowMode,
    WorkflowResult,
    WorkflowState,
    is_envelope,
)
from .secret_file_manager import SecretFileManager

__all__ = [
    # Context
    "SecretContext",
    # Components
    "EncryptionCoordinator",
    "EncryptionManager",
    "KeyGenerator",
    "SecretFileManager",
    # Resolution
    "CiEnvironmentCredentialProvider",
    "CredentialProvider",
    "CredentialResolver",
    "build_credential_provider",
    "resolve_credentials",
    # Models
    "EncryptedField",
    "EnvironmentPaths",
    "SecretKeyRecord",
    "UserCredentials",
    "WorkflowCommand",
    "WorkflowMode",
    "WorkflowResult",
    "WorkflowState",
    "field_binding",
    "is_envelope",
]
