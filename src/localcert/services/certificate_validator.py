"""
Validation of managed self-signed identity certificates.

A certificate is a valid managed identity for name N when, in order:
1. its signature verifies against its own public key
2. its subject equals its issuer
3. its subject is exactly CN=N
4. now lies within [not-before, not-after - grace period]

Checks short-circuit on the first failure. Validation never touches the
key store.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa

from localcert.models import (
    COMMON_NAME_PREFIX,
    CertificateValidationError,
    ValidationFailure,
    identity_subject,
)

DEFAULT_GRACE_PERIOD = timedelta(days=1)


def utc_now() -> datetime:
    return datetime.now(UTC)


def verify_self_signature(certificate: x509.Certificate) -> bool:
    """
    Check that a certificate's signature verifies against its own public key.

    Args:
        certificate: Certificate to check

    Returns:
        True if the certificate signed itself
    """
    public_key = certificate.public_key()
    signature = certificate.signature
    tbs = certificate.tbs_certificate_bytes

    try:
        if isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, tbs, certificate.signature_algorithm_parameters)
        elif isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(
                signature,
                tbs,
                certificate.signature_algorithm_parameters,
                certificate.signature_hash_algorithm,
            )
        elif isinstance(public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
            public_key.verify(signature, tbs)
        else:
            return False
    except (InvalidSignature, UnsupportedAlgorithm, TypeError, ValueError):
        return False

    return True


class CertificateValidator:
    """
    Predicate "is a valid self-issued identity for name N".

    Attributes:
        grace_period: Time before not-after at which a certificate stops
            being acceptable
    """

    def __init__(
        self,
        grace_period: timedelta = DEFAULT_GRACE_PERIOD,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            grace_period: Renewal margin subtracted from not-after
            clock: Returns the current time as an aware UTC datetime
        """
        self.grace_period = grace_period
        self._clock = clock

    def validate_identity(self, certificate: x509.Certificate, name: str) -> None:
        """
        Run the structural checks (self-signature, subject, issuer).

        Args:
            certificate: Certificate to check
            name: Identity name it must be issued to

        Raises:
            CertificateValidationError: On the first failing check
        """
        if not verify_self_signature(certificate):
            raise CertificateValidationError(
                ValidationFailure.NOT_SELF_SIGNED,
                "Certificate signature does not verify against its own key",
            )

        if certificate.subject != certificate.issuer:
            raise CertificateValidationError(
                ValidationFailure.SUBJECT_ISSUER_MISMATCH,
                f"Subject {certificate.subject.rfc4514_string()!r} differs from "
                f"issuer {certificate.issuer.rfc4514_string()!r}",
            )

        if certificate.subject != identity_subject(name):
            raise CertificateValidationError(
                ValidationFailure.NAME_MISMATCH,
                f"Subject {certificate.subject.rfc4514_string()!r} is not "
                f"{COMMON_NAME_PREFIX}{name}",
            )

    def validate(self, certificate: x509.Certificate, name: str) -> None:
        """
        Run every check, including the validity window.

        Args:
            certificate: Certificate to check
            name: Identity name it must be issued to

        Raises:
            CertificateValidationError: On the first failing check
        """
        self.validate_identity(certificate, name)

        now = self._clock()
        not_before = certificate.not_valid_before_utc
        not_after = certificate.not_valid_after_utc
        if now < not_before or now > not_after - self.grace_period:
            raise CertificateValidationError(
                ValidationFailure.EXPIRED_OR_NOT_YET_VALID,
                f"Certificate valid {not_before.isoformat()} to "
                f"{not_after.isoformat()} is not acceptable at {now.isoformat()}",
            )

    def is_valid(self, certificate: x509.Certificate, name: str) -> bool:
        """Boolean form of validate()."""
        try:
            self.validate(certificate, name)
        except CertificateValidationError:
            return False
        return True
