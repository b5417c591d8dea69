"""
Certificate models shared by the lifecycle services.

LocalCertificate is a read-only view of a certificate as the key store
reports it. OperationResult is what the task runner hands to callbacks.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from localcert.models.errors import LocalCertError

T = TypeVar("T")

COMMON_NAME_PREFIX = "CN="


def identity_subject(name: str) -> x509.Name:
    """
    Build the subject (and issuer) of the managed certificate for a name.

    Args:
        name: Identity name

    Returns:
        x509.Name holding a single common name attribute
    """
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)])


@dataclass(frozen=True)
class LocalCertificate:
    """
    Certificate stored under an identity name.

    Attributes:
        name: Identity name the certificate is stored under
        certificate: Parsed X.509 certificate
        handle: Opaque store entry identifier
    """

    name: str
    certificate: x509.Certificate
    handle: str

    @property
    def subject_name(self) -> str:
        return self.certificate.subject.rfc4514_string()

    @property
    def issuer_name(self) -> str:
        return self.certificate.issuer.rfc4514_string()

    @property
    def serial_number(self) -> str:
        """Serial number as an upper-case hex string."""
        return format(self.certificate.serial_number, "X")

    @property
    def not_valid_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_valid_after(self) -> datetime:
        return self.certificate.not_valid_after_utc

    @property
    def signature_algorithm_oid(self) -> x509.ObjectIdentifier:
        return self.certificate.signature_algorithm_oid

    @property
    def signature(self) -> bytes:
        return self.certificate.signature

    @property
    def certificate_pem(self) -> str:
        return self.certificate.public_bytes(serialization.Encoding.PEM).decode()

    @property
    def sha256_fingerprint(self) -> str:
        """Colon separated SHA-256 fingerprint of the DER encoding."""
        digest = self.certificate.fingerprint(hashes.SHA256())
        return ":".join(f"{byte:02X}" for byte in digest)


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Outcome of one certificate operation, delivered exactly once.

    Attributes:
        value: Result value on success (None for operations without one)
        error: Error on failure
    """

    value: T | None = None
    error: LocalCertError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: LocalCertError) -> "OperationResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T | None:
        """
        Return the value or raise the carried error.

        Raises:
            LocalCertError: If the operation failed
        """
        if self.error is not None:
            raise self.error
        return self.value
