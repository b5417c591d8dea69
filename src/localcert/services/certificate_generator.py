"""
Generation of self-signed identity certificates.

Produces a fresh P-256 key pair inside the key store and a version 3
certificate for CN=<name> signed with ECDSA-SHA256 by that same key.

Security notes:
- The private key never leaves the store; signing happens store-side
- Existing certificates under the name are swept first, so a name never
  holds two managed certificates once generation completes
- The returned certificate is the one re-read from the store, not the
  in-memory object that was built
- A key whose certificate never made it into the store is deleted again
- Serial numbers are random; collisions are possible in principle and
  are not checked for
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from loguru import logger

from localcert.infrastructure.repositories import KeyHandle, KeyStore, KeyStoreError
from localcert.models import (
    ImportFailedError,
    KeyGenerationFailedError,
    LocalCertificate,
    ReadbackFailedError,
    SigningFailedError,
    StoreUnavailableError,
    identity_subject,
)
from localcert.services.certificate_validator import utc_now
from localcert.services.key_store_gateway import KeyStoreGateway

KEY_CURVE = ec.SECP256R1()
SIGNATURE_HASH = hashes.SHA256()

DEFAULT_VALIDITY = timedelta(days=365)
DEFAULT_BACKDATE = timedelta(days=1)
DEFAULT_SERIAL_BYTES = 8


class CertificateGenerator:
    """
    Creates the key pair and self-signed certificate for an identity name.
    """

    def __init__(
        self,
        gateway: KeyStoreGateway,
        validity: timedelta = DEFAULT_VALIDITY,
        backdate: timedelta = DEFAULT_BACKDATE,
        serial_number_bytes: int = DEFAULT_SERIAL_BYTES,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            gateway: Gateway to the key store
            validity: How long after now the certificate stays valid
            backdate: How far before now the certificate becomes valid
            serial_number_bytes: Random bytes drawn for the serial number
            clock: Returns the current time as an aware UTC datetime
        """
        self.gateway = gateway
        self.validity = validity
        self.backdate = backdate
        self.serial_number_bytes = serial_number_bytes
        self._clock = clock

    def _generate_serial_number(self, random_bytes: bytes) -> int:
        """
        Turn store randomness into a serial number.

        Args:
            random_bytes: Bytes from the store's random source

        Returns:
            Positive integer (X.509 forbids zero)
        """
        return int.from_bytes(random_bytes, "big") or 1

    def _build_certificate(
        self, subject: x509.Name, key: KeyHandle, serial: int
    ) -> x509.CertificateBuilder:
        now = self._clock()

        not_before = now - self.backdate
        not_after = now + self.validity

        return (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key)
            .serial_number(serial)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None), critical=True
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=False,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(key.public_key),
                critical=False,
            )
        )

    def _discard_key(self, key_store: KeyStore, key: KeyHandle) -> None:
        try:
            key_store.delete_key(key)
        except KeyStoreError as e:
            logger.warning(f"Could not discard unused key {key.key_id[:16]}: {e}")

    def generate(self, name: str) -> LocalCertificate:
        """
        Replace whatever is stored under a name with a new certificate.

        Args:
            name: Identity name

        Returns:
            The new certificate as read back from the store

        Raises:
            StoreUnavailableError: If the store cannot be used
            UnexpectedCertificateError: If the sweep finds a foreign certificate
            KeyGenerationFailedError: If the key pair cannot be created
            SigningFailedError: If the certificate cannot be built or signed
            ImportFailedError: If the store rejects the certificate
            ReadbackFailedError: If the imported certificate cannot be found
        """
        key_store = self.gateway.acquire()

        self.gateway.remove_all_for_name(name)

        subject = identity_subject(name)

        try:
            key = key_store.generate_key_pair(KEY_CURVE)
        except KeyStoreError as e:
            logger.error(f"Key generation for {name!r} failed: {e}")
            raise KeyGenerationFailedError(f"Key generation failed: {e}") from e

        try:
            serial = self._generate_serial_number(
                key_store.random_bytes(self.serial_number_bytes)
            )
            builder = self._build_certificate(subject, key, serial)
            certificate = key_store.sign_certificate(key, builder, SIGNATURE_HASH)
        except (KeyStoreError, ValueError, TypeError) as e:
            logger.error(f"Signing certificate for {name!r} failed: {e}")
            self._discard_key(key_store, key)
            raise SigningFailedError(f"Signing failed: {e}") from e

        try:
            key_store.import_certificate(certificate, name)
        except KeyStoreError as e:
            logger.error(f"Importing certificate for {name!r} failed: {e}")
            self._discard_key(key_store, key)
            raise ImportFailedError(f"Import failed: {e}") from e

        try:
            stored = self.gateway.find_by_name(name)
        except StoreUnavailableError as e:
            raise ReadbackFailedError(f"Readback failed: {e}") from e
        if stored is None:
            raise ReadbackFailedError(
                f"Certificate for {name!r} missing from the store after import"
            )

        logger.info(
            f"Generated certificate for {name!r}: serial={stored.serial_number}, "
            f"expires={stored.not_valid_after.isoformat()}"
        )
        return stored
