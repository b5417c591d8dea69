"""
Models package.

Contains the certificate view, the operation result envelope and the
error taxonomy shared across localcert.
"""

from localcert.models.certificate import (
    COMMON_NAME_PREFIX,
    LocalCertificate,
    OperationResult,
    identity_subject,
)
from localcert.models.errors import (
    AuthDeniedError,
    CertificateValidationError,
    ErrorKind,
    GenerationError,
    ImportFailedError,
    InvalidArgumentError,
    KeyGenerationFailedError,
    LocalCertError,
    ReadbackFailedError,
    SigningFailedError,
    StoreUnavailableError,
    UnexpectedCertificateError,
    ValidationFailure,
)

__all__ = [
    "COMMON_NAME_PREFIX",
    "LocalCertificate",
    "OperationResult",
    "identity_subject",
    # Errors
    "AuthDeniedError",
    "CertificateValidationError",
    "ErrorKind",
    "GenerationError",
    "ImportFailedError",
    "InvalidArgumentError",
    "KeyGenerationFailedError",
    "LocalCertError",
    "ReadbackFailedError",
    "SigningFailedError",
    "StoreUnavailableError",
    "UnexpectedCertificateError",
    "ValidationFailure",
]
