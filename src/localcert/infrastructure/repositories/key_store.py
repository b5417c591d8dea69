"""
Abstract interface for the key and certificate store.

The store is the only owner of private key material. Callers see:
- Opaque key handles (key id + public key) for generated key pairs
- Stored certificate entries addressed by name
- Store-side signing, so private keys never leave the store
- The store's credential state (user init, login)
- The store's random source
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificatePublicKeyTypes,
)


class KeyStoreError(Exception):
    """Raised by key store implementations when an operation fails."""


@dataclass(frozen=True)
class KeyHandle:
    """
    Handle to a private key persisted in the store.

    Attributes:
        key_id: Store identifier of the key (hex SHA-256 of the public key)
        public_key: Public half of the key pair
    """

    key_id: str
    public_key: ec.EllipticCurvePublicKey


@dataclass(frozen=True)
class StoredCertificate:
    """
    Certificate entry held by the store.

    Attributes:
        handle: Store identifier of the entry
        name: Name the certificate was imported under
        certificate: Parsed X.509 certificate
        key_id: Identifier of the private key bound to it, if any
    """

    handle: str
    name: str
    certificate: x509.Certificate
    key_id: str | None = None


class KeyStore(ABC):
    """
    Abstract interface for key and certificate storage operations.

    Implementations must be thread-safe: the store serializes its own
    mutations. Every failure is reported as KeyStoreError.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check whether the store can be used.

        Returns:
            True if the store is open and reachable
        """
        pass

    @abstractmethod
    def needs_user_init(self) -> bool:
        """
        Check whether the store has never had a password set.

        Returns:
            True if init_password must be called before use
        """
        pass

    @abstractmethod
    def init_password(self, password: str) -> None:
        """
        Set the initial store password (may be empty).

        Args:
            password: Initial password

        Raises:
            KeyStoreError: If the store is already initialized
        """
        pass

    @abstractmethod
    def needs_login(self) -> bool:
        """
        Check whether the store is protected by a non-empty password.

        Returns:
            True if a login is required before keys can be used
        """
        pass

    @abstractmethod
    def is_logged_in(self) -> bool:
        """
        Check whether this process has logged in to the store.

        Returns:
            True if logged in
        """
        pass

    @abstractmethod
    def login(self, password: str) -> bool:
        """
        Log in to the store.

        Args:
            password: Store password

        Returns:
            True on success, False if the password is wrong
        """
        pass

    @abstractmethod
    def find_by_name(self, name: str) -> StoredCertificate | None:
        """
        Find a certificate stored under a name.

        Args:
            name: Exact name the certificate was imported under

        Returns:
            The first matching entry, or None if there is none
        """
        pass

    @abstractmethod
    def delete_certificate_and_key(self, stored: StoredCertificate) -> None:
        """
        Delete a certificate entry and the private key bound to it.

        Args:
            stored: Entry returned by find_by_name

        Raises:
            KeyStoreError: If deletion fails
        """
        pass

    @abstractmethod
    def delete_key(self, key: KeyHandle) -> None:
        """
        Delete a private key that no certificate entry is bound to.

        Deleting a key that is already gone is not an error.

        Args:
            key: Handle returned by generate_key_pair

        Raises:
            KeyStoreError: If deletion fails
        """
        pass

    @abstractmethod
    def generate_key_pair(self, curve: ec.EllipticCurve) -> KeyHandle:
        """
        Generate a sensitive, non-exportable key pair inside the store.

        Args:
            curve: Elliptic curve to generate the key on

        Returns:
            Handle to the persisted key

        Raises:
            KeyStoreError: If key generation or persistence fails
        """
        pass

    @abstractmethod
    def sign_certificate(
        self,
        key: KeyHandle,
        builder: x509.CertificateBuilder,
        algorithm: hashes.HashAlgorithm,
    ) -> x509.Certificate:
        """
        Sign a certificate with a private key held by the store.

        Args:
            key: Handle of the signing key
            builder: Fully populated certificate builder
            algorithm: Hash algorithm paired with the key type

        Returns:
            Signed certificate

        Raises:
            KeyStoreError: If the key is missing or signing fails
        """
        pass

    @abstractmethod
    def import_certificate(
        self, certificate: x509.Certificate, name: str
    ) -> StoredCertificate:
        """
        Store a certificate under a name.

        The private key whose public key matches the certificate, if the
        store holds one, is bound to the new entry.

        Args:
            certificate: Certificate to store
            name: Name to store it under

        Returns:
            The stored entry

        Raises:
            KeyStoreError: If the certificate is rejected
        """
        pass

    @abstractmethod
    def random_bytes(self, length: int) -> bytes:
        """
        Draw bytes from the store's random source.

        Args:
            length: Number of bytes

        Returns:
            Random bytes
        """
        pass


def key_id_for(public_key: CertificatePublicKeyTypes) -> str:
    """
    Compute the store identifier of a public key.

    Args:
        public_key: Public key of a certificate or key pair

    Returns:
        Hex SHA-256 digest of the DER SubjectPublicKeyInfo
    """
    der = public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    digest = hashes.Hash(hashes.SHA256())
    digest.update(der)
    return digest.finalize().hex()
