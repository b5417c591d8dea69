"""
In-memory key store implementation.

Keeps keys and certificates in process memory. Nothing survives the
process, which makes it suitable for tests and ephemeral identities.
Every store call is counted in access_count.
"""

import itertools
import os
import threading

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from loguru import logger

from localcert.infrastructure.repositories.key_store import (
    KeyHandle,
    KeyStore,
    KeyStoreError,
    StoredCertificate,
    key_id_for,
)


class MemoryKeyStore(KeyStore):
    """
    Process-local key store.

    Thread-safe via a single reentrant lock.

    Attributes:
        access_count: Number of store calls made so far
        available: Set to False to simulate an unreachable store
    """

    def __init__(self, password: str | None = None):
        """
        Initialize in-memory key store.

        Args:
            password: Initial password; None leaves the store uninitialized
        """
        self._lock = threading.RLock()
        self._password = password
        self._logged_in = False
        self._keys: dict[str, ec.EllipticCurvePrivateKey] = {}
        self._entries: dict[str, StoredCertificate] = {}
        self._sequence = itertools.count(1)

        self.access_count = 0
        self.available = True

        logger.debug("Initialized MemoryKeyStore")

    def _touch(self) -> None:
        self.access_count += 1

    def _require_unlocked(self) -> None:
        if self._password is None:
            raise KeyStoreError("Key store has not been initialized")
        if self._password and not self._logged_in:
            raise KeyStoreError("Key store is locked")

    def is_available(self) -> bool:
        with self._lock:
            self._touch()
            return self.available

    def needs_user_init(self) -> bool:
        with self._lock:
            self._touch()
            return self._password is None

    def init_password(self, password: str) -> None:
        with self._lock:
            self._touch()
            if self._password is not None:
                raise KeyStoreError("Key store password is already set")
            self._password = password
            logger.info("Initialized in-memory key store password")

    def needs_login(self) -> bool:
        with self._lock:
            self._touch()
            return bool(self._password)

    def is_logged_in(self) -> bool:
        with self._lock:
            self._touch()
            return self._logged_in

    def login(self, password: str) -> bool:
        with self._lock:
            self._touch()
            if self._password is None or password != self._password:
                return False
            self._logged_in = True
            return True

    def find_by_name(self, name: str) -> StoredCertificate | None:
        with self._lock:
            self._touch()
            for stored in self._entries.values():
                if stored.name == name:
                    return stored
            return None

    def delete_certificate_and_key(self, stored: StoredCertificate) -> None:
        with self._lock:
            self._touch()
            if self._entries.pop(stored.handle, None) is None:
                raise KeyStoreError(f"Unknown certificate entry {stored.handle}")
            if stored.key_id is not None:
                self._keys.pop(stored.key_id, None)

    def delete_key(self, key: KeyHandle) -> None:
        with self._lock:
            self._touch()
            self._keys.pop(key.key_id, None)

    def generate_key_pair(self, curve: ec.EllipticCurve) -> KeyHandle:
        with self._lock:
            self._touch()
            self._require_unlocked()
            try:
                private_key = ec.generate_private_key(curve)
            except (TypeError, ValueError, UnsupportedAlgorithm) as e:
                raise KeyStoreError(f"Key generation failed: {e}") from e

            public_key = private_key.public_key()
            key_id = key_id_for(public_key)
            self._keys[key_id] = private_key
            return KeyHandle(key_id=key_id, public_key=public_key)

    def sign_certificate(
        self,
        key: KeyHandle,
        builder: x509.CertificateBuilder,
        algorithm: hashes.HashAlgorithm,
    ) -> x509.Certificate:
        with self._lock:
            self._touch()
            self._require_unlocked()
            private_key = self._keys.get(key.key_id)
            if private_key is None:
                raise KeyStoreError(f"Unknown key {key.key_id}")
            try:
                return builder.sign(private_key=private_key, algorithm=algorithm)
            except (TypeError, ValueError) as e:
                raise KeyStoreError(f"Signing failed: {e}") from e

    def import_certificate(
        self, certificate: x509.Certificate, name: str
    ) -> StoredCertificate:
        with self._lock:
            self._touch()
            key_id = key_id_for(certificate.public_key())
            stored = StoredCertificate(
                handle=f"mem-{next(self._sequence)}",
                name=name,
                certificate=certificate,
                key_id=key_id if key_id in self._keys else None,
            )
            self._entries[stored.handle] = stored
            return stored

    def random_bytes(self, length: int) -> bytes:
        with self._lock:
            self._touch()
            return os.urandom(length)

    def has_key(self, key_id: str) -> bool:
        """Check whether a private key is held (test and diagnostics helper)."""
        with self._lock:
            return key_id in self._keys

    def key_count(self) -> int:
        """Number of private keys held."""
        with self._lock:
            return len(self._keys)

    def entries_for(self, name: str) -> list[StoredCertificate]:
        """List every entry stored under a name, oldest first."""
        with self._lock:
            return [stored for stored in self._entries.values() if stored.name == name]
