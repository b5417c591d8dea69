"""
Local file-based key store implementation.

Stores keys and certificates in a local directory structure:
    {base_dir}/
        password.json              (scrypt verifier of the store password)
        keys/
            {key_id}.pem           (PKCS#8, encrypted when a password is set)
        certificates/
            {entry_id}.json        (name, key_id, certificate_pem, imported_at)

Entry ids sort chronologically, so lookups return the oldest entry first.
Login state is held per process; the password never touches disk.
"""

import json
import os
import threading
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from cryptography import x509
from cryptography.exceptions import InvalidKey, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from loguru import logger

from localcert.infrastructure.repositories.key_store import (
    KeyHandle,
    KeyStore,
    KeyStoreError,
    StoredCertificate,
    key_id_for,
)

SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
PASSWORD_RECORD_FIELDS = {"empty", "salt", "verifier"}


def _password_kdf(salt: bytes) -> Scrypt:
    return Scrypt(salt=salt, length=32, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)


class LocalKeyStore(KeyStore):
    """
    File-based key store for a single user.

    Thread-safe within a process via a reentrant lock and atomic file
    replacement. Concurrent processes sharing a directory are not
    coordinated.
    """

    def __init__(self, base_dir: str = "./.localcert"):
        """
        Initialize local key store.

        Args:
            base_dir: Base directory for key and certificate storage
        """
        self.base_dir = Path(base_dir).expanduser()
        self.keys_dir = self.base_dir / "keys"
        self.certs_dir = self.base_dir / "certificates"
        self.password_path = self.base_dir / "password.json"

        self._lock = threading.RLock()
        self._password: str | None = None

        # Create directories if they don't exist
        try:
            self.keys_dir.mkdir(parents=True, exist_ok=True)
            self.certs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create key store at {self.base_dir}: {e}")
        else:
            # Set restrictive permissions (owner read/write only)
            for directory in (self.base_dir, self.keys_dir, self.certs_dir):
                try:
                    directory.chmod(0o700)
                except OSError as e:
                    logger.warning(f"Could not set directory permissions: {e}")

        logger.info(f"Initialized LocalKeyStore at {self.base_dir}")

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _key_path(self, key_id: str) -> Path:
        """Get path to private key file."""
        return self.keys_dir / f"{key_id}.pem"

    def _entry_path(self, entry_id: str) -> Path:
        """Get path to certificate entry file."""
        return self.certs_dir / f"{entry_id}.json"

    def _write_atomic(self, path: Path, data: bytes, mode: int = 0o600) -> None:
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise KeyStoreError(f"Could not write {path.name}: {e}") from e

    def _read_password_record(self) -> dict[str, Any] | None:
        if not self.password_path.exists():
            return None
        try:
            record = json.loads(self.password_path.read_text())
        except (OSError, ValueError) as e:
            raise KeyStoreError(f"Unreadable password record: {e}") from e
        if not isinstance(record, dict) or not PASSWORD_RECORD_FIELDS <= record.keys():
            raise KeyStoreError("Malformed password record")
        return record

    def _entry_to_dict(self, stored: StoredCertificate) -> dict[str, Any]:
        """Convert StoredCertificate to JSON-serializable dict."""
        return {
            "name": stored.name,
            "key_id": stored.key_id,
            "certificate_pem": stored.certificate.public_bytes(
                serialization.Encoding.PEM
            ).decode(),
            "imported_at": datetime.now(UTC).isoformat(),
        }

    def _dict_to_entry(self, entry_id: str, data: dict[str, Any]) -> StoredCertificate:
        """Convert dict to StoredCertificate."""
        return StoredCertificate(
            handle=entry_id,
            name=data["name"],
            certificate=x509.load_pem_x509_certificate(data["certificate_pem"].encode()),
            key_id=data.get("key_id"),
        )

    def _require_unlocked(self) -> None:
        record = self._read_password_record()
        if record is None:
            raise KeyStoreError("Key store has not been initialized")
        if not record["empty"] and self._password is None:
            raise KeyStoreError("Key store is locked")

    def _key_encryption(self) -> serialization.KeySerializationEncryption:
        if self._password:
            return serialization.BestAvailableEncryption(self._password.encode())
        return serialization.NoEncryption()

    def _load_private_key(self, key_id: str) -> ec.EllipticCurvePrivateKey:
        key_path = self._key_path(key_id)
        if not key_path.exists():
            raise KeyStoreError(f"Unknown key {key_id}")
        try:
            private_key = serialization.load_pem_private_key(
                key_path.read_bytes(),
                password=self._password.encode() if self._password else None,
            )
        except (OSError, ValueError, TypeError) as e:
            raise KeyStoreError(f"Could not load key {key_id}: {e}") from e
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise KeyStoreError(f"Key {key_id} is not an elliptic curve key")
        return private_key

    # ------------------------------------------------------------------
    # KeyStore interface
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        return (
            self.keys_dir.is_dir()
            and self.certs_dir.is_dir()
            and os.access(self.base_dir, os.W_OK)
        )

    def needs_user_init(self) -> bool:
        with self._lock:
            return self._read_password_record() is None

    def init_password(self, password: str) -> None:
        with self._lock:
            if self._read_password_record() is not None:
                raise KeyStoreError("Key store password is already set")

            salt = os.urandom(16)
            record = {
                "empty": password == "",
                "salt": salt.hex(),
                "verifier": _password_kdf(salt).derive(password.encode()).hex(),
            }
            self._write_atomic(self.password_path, json.dumps(record, indent=2).encode())
            if password:
                self._password = password

            logger.info("Initialized key store password")

    def needs_login(self) -> bool:
        with self._lock:
            record = self._read_password_record()
            return record is not None and not record["empty"]

    def is_logged_in(self) -> bool:
        with self._lock:
            return self._password is not None

    def login(self, password: str) -> bool:
        with self._lock:
            record = self._read_password_record()
            if record is None:
                return False
            try:
                _password_kdf(bytes.fromhex(record["salt"])).verify(
                    password.encode(), bytes.fromhex(record["verifier"])
                )
            except InvalidKey:
                logger.warning("Key store login failed: wrong password")
                return False
            except (TypeError, ValueError) as e:
                raise KeyStoreError(f"Malformed password record: {e}") from e

            self._password = password if password else None
            logger.info("Logged in to key store")
            return True

    def find_by_name(self, name: str) -> StoredCertificate | None:
        with self._lock:
            for entry_file in sorted(self.certs_dir.glob("*.json")):
                try:
                    data = json.loads(entry_file.read_text())
                except (OSError, ValueError) as e:
                    raise KeyStoreError(
                        f"Unreadable certificate entry {entry_file.name}: {e}"
                    ) from e
                if data.get("name") != name:
                    continue
                try:
                    return self._dict_to_entry(entry_file.stem, data)
                except ValueError as e:
                    raise KeyStoreError(
                        f"Corrupt certificate in entry {entry_file.name}: {e}"
                    ) from e
            return None

    def delete_certificate_and_key(self, stored: StoredCertificate) -> None:
        with self._lock:
            entry_path = self._entry_path(stored.handle)
            if not entry_path.exists():
                raise KeyStoreError(f"Unknown certificate entry {stored.handle}")
            try:
                entry_path.unlink()
                if stored.key_id is not None:
                    self._key_path(stored.key_id).unlink(missing_ok=True)
            except OSError as e:
                raise KeyStoreError(
                    f"Could not delete certificate entry {stored.handle}: {e}"
                ) from e

            logger.debug(f"Deleted certificate entry {stored.handle}")

    def delete_key(self, key: KeyHandle) -> None:
        with self._lock:
            try:
                self._key_path(key.key_id).unlink(missing_ok=True)
            except OSError as e:
                raise KeyStoreError(f"Could not delete key {key.key_id}: {e}") from e

            logger.debug(f"Deleted key {key.key_id[:16]}")

    def generate_key_pair(self, curve: ec.EllipticCurve) -> KeyHandle:
        with self._lock:
            self._require_unlocked()
            try:
                private_key = ec.generate_private_key(curve)
            except (TypeError, ValueError, UnsupportedAlgorithm) as e:
                raise KeyStoreError(f"Key generation failed: {e}") from e

            public_key = private_key.public_key()
            key_id = key_id_for(public_key)
            key_pem = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=self._key_encryption(),
            )
            self._write_atomic(self._key_path(key_id), key_pem)

            logger.debug(f"Generated {curve.name} key {key_id[:16]}")
            return KeyHandle(key_id=key_id, public_key=public_key)

    def sign_certificate(
        self,
        key: KeyHandle,
        builder: x509.CertificateBuilder,
        algorithm: hashes.HashAlgorithm,
    ) -> x509.Certificate:
        with self._lock:
            self._require_unlocked()
            private_key = self._load_private_key(key.key_id)
            try:
                return builder.sign(private_key=private_key, algorithm=algorithm)
            except (TypeError, ValueError) as e:
                raise KeyStoreError(f"Signing failed: {e}") from e

    def import_certificate(
        self, certificate: x509.Certificate, name: str
    ) -> StoredCertificate:
        with self._lock:
            key_id = key_id_for(certificate.public_key())
            entry_id = f"{time.time_ns():020d}-{uuid.uuid4().hex[:8]}"
            stored = StoredCertificate(
                handle=entry_id,
                name=name,
                certificate=certificate,
                key_id=key_id if self._key_path(key_id).exists() else None,
            )
            self._write_atomic(
                self._entry_path(entry_id),
                json.dumps(self._entry_to_dict(stored), indent=2).encode(),
                mode=0o644,
            )

            logger.info(
                f"Imported certificate for {name}, "
                f"serial {format(certificate.serial_number, 'X')}"
            )
            return stored

    def random_bytes(self, length: int) -> bytes:
        return os.urandom(length)
