"""
Error taxonomy for envcrypt.

This module provides hierarchical error classification for the credential
encryption workflows. Every error carries a severity, a category and a stable
error code so that operators and CI steps can tell a missing file apart from a
tampered ciphertext without parsing messages.

Errors are never recovered locally: they propagate to the caller unchanged.
"""

import time
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for classification and handling."""

    CRITICAL = auto()  # Security events, never ignorable
    HIGH = auto()  # Workflow cannot complete
    MEDIUM = auto()  # Operator action required
    LOW = auto()  # Invalid input


class ErrorCategory(Enum):
    """Error categories for classification and routing."""

    SYSTEM = auto()
    FILESYSTEM = auto()
    CRYPTOGRAPHY = auto()
    AUTHENTICATION = auto()
    CONFIGURATION = auto()
    VALIDATION = auto()


class BaseError(Exception):
    """Base exception class with enhanced error information."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize base error with metadata.

        Args:
            message: Human-readable error message, free of secret material
            severity: Error severity level
            category: Error category for classification
            error_code: Unique error code for tracking
            context: Additional, non-sensitive context information
        """
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def _generate_error_code(self) -> str:
        """Generate unique error code based on category and timestamp."""
        timestamp = int(time.time() * 1000) % 100000
        return f"{self.category.name[:3]}-{self.severity.name[:3]}-{timestamp}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code,
            "error_type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.name,
            "category": self.category.name,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class CredentialError(BaseError):
    """Base class for every failure of the credential encryption subsystem."""

    exit_code: int = 1


class GenerationError(CredentialError):
    """No secure random source was available to generate key material."""

    exit_code = 7

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.SYSTEM,
            **kwargs,
        )


class FileAccessError(CredentialError):
    """A secret or environment file could not be read or written."""

    exit_code = 3

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        if path is not None:
            context["path"] = str(path)
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.FILESYSTEM,
            context=context,
            **kwargs,
        )


class MalformedEnvelopeError(CredentialError):
    """A stored value does not parse into {nonce, ciphertext, tag}."""

    exit_code = 5

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.VALIDATION,
            **kwargs,
        )


class AuthenticationFailure(CredentialError):
    """AEAD tag verification failed: wrong key, wrong binding or tampering."""

    exit_code = 6

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.AUTHENTICATION,
            **kwargs,
        )


class MissingKeyError(CredentialError):
    """No secret key is on record for an environment."""

    exit_code = 4

    def __init__(self, environment: str, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        context["environment"] = environment
        super().__init__(
            f"No secret key on record for environment '{environment}'",
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            context=context,
            **kwargs,
        )
        self.environment = environment


class MissingFieldError(CredentialError):
    """A designated field is absent or empty in an environment file."""

    exit_code = 8

    def __init__(self, message: str, field: Optional[str] = None, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            context=context,
            **kwargs,
        )
        self.field = field


class KeyDerivationError(CredentialError):
    """The key-derivation function failed."""

    exit_code = 9

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CRYPTOGRAPHY,
            **kwargs,
        )


class KeyDerivationTimeout(KeyDerivationError):
    """Key derivation did not finish within its time bound."""


class InvalidEnvironmentError(CredentialError):
    """An environment name is not safe to use as part of a file name."""

    exit_code = 2

    def __init__(self, environment: str, **kwargs: Any) -> None:
        super().__init__(
            f"Invalid environment name: {environment!r}",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            context={"environment": environment},
            **kwargs,
        )
