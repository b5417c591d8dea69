"""Abstract repository interfaces for infrastructure operations."""

from localcert.infrastructure.repositories.key_store import (
    KeyHandle,
    KeyStore,
    KeyStoreError,
    StoredCertificate,
    key_id_for,
)

__all__ = [
    "KeyHandle",
    "KeyStore",
    "KeyStoreError",
    "StoredCertificate",
    "key_id_for",
]
