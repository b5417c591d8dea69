"""
Error taxonomy for certificate lifecycle operations.

Every failure a caller can observe is a LocalCertError carrying an
ErrorKind. Failures are delivered through the same result channel as
successes; nothing is retried except a failed validation, which triggers
exactly one regeneration.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of lifecycle failures."""

    INVALID_ARGUMENT = "invalid_argument"
    AUTH_DENIED = "auth_denied"
    STORE_UNAVAILABLE = "store_unavailable"
    VALIDATION_FAILURE = "validation_failure"
    KEY_GENERATION_FAILED = "key_generation_failed"
    SIGNING_FAILED = "signing_failed"
    IMPORT_FAILED = "import_failed"
    READBACK_FAILED = "readback_failed"
    UNEXPECTED_CERTIFICATE = "unexpected_certificate"


class ValidationFailure(str, Enum):
    """Reasons a stored certificate is not a valid managed identity."""

    NOT_SELF_SIGNED = "not_self_signed"
    SUBJECT_ISSUER_MISMATCH = "subject_issuer_mismatch"
    NAME_MISMATCH = "name_mismatch"
    EXPIRED_OR_NOT_YET_VALID = "expired_or_not_yet_valid"


class LocalCertError(Exception):
    """Base class for all localcert errors.

    Attributes:
        kind: Error kind
        message: Human-readable explanation
    """

    kind: ErrorKind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class InvalidArgumentError(LocalCertError, ValueError):
    """Empty or oversized identity name, or missing result callback."""

    kind = ErrorKind.INVALID_ARGUMENT


class AuthDeniedError(LocalCertError):
    """The key store could not be unlocked."""

    kind = ErrorKind.AUTH_DENIED


class StoreUnavailableError(LocalCertError):
    """The key store could not be reached or refused an operation."""

    kind = ErrorKind.STORE_UNAVAILABLE


class CertificateValidationError(LocalCertError):
    """A stored certificate failed validation. Never surfaced to callers."""

    kind = ErrorKind.VALIDATION_FAILURE

    def __init__(self, reason: ValidationFailure, message: str):
        super().__init__(message)
        self.reason = reason


class GenerationError(LocalCertError):
    """Base class for failures while generating a replacement certificate."""


class KeyGenerationFailedError(GenerationError):
    kind = ErrorKind.KEY_GENERATION_FAILED


class SigningFailedError(GenerationError):
    kind = ErrorKind.SIGNING_FAILED


class ImportFailedError(GenerationError):
    kind = ErrorKind.IMPORT_FAILED


class ReadbackFailedError(GenerationError):
    kind = ErrorKind.READBACK_FAILED


class UnexpectedCertificateError(LocalCertError):
    """A certificate stored under the name was not issued by this manager.

    Attributes:
        name: Identity name that was being swept
        serial: Hex serial of the offending certificate
    """

    kind = ErrorKind.UNEXPECTED_CERTIFICATE

    def __init__(self, name: str, serial: str, message: str):
        super().__init__(message)
        self.name = name
        self.serial = serial
