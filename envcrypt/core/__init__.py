"""Core infrastructure components."""

from .error_handling import (
    AuthenticationFailure,
    BaseError,
    CredentialError,
    ErrorCategory,
    ErrorSeverity,
    FileAccessError,
    GenerationError,
    InvalidEnvironmentError,
    KeyDerivationError,
    KeyDerivationTimeout,
    MalformedEnvelopeError,
    MissingFieldError,
    MissingKeyError,
)

__all__ = [
    "AuthenticationFailure",
    "BaseError",
    "CredentialError",
    "ErrorCategory",
    "ErrorSeverity",
    "FileAccessError",
    "GenerationError",
    "InvalidEnvironmentError",
    "KeyDerivationError",
    "KeyDerivationTimeout",
    "MalformedEnvelopeError",
    "MissingFieldError",
    "MissingKeyError",
]
