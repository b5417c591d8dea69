"""Global pytest configuration and fixtures for all tests."""

import os
from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from localcert.config import get_settings
from localcert.infrastructure.implementations.memory import MemoryKeyStore
from localcert.models import identity_subject

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(scope="session", autouse=True)
def set_test_env_vars(tmp_path_factory):
    """
    Set environment variables for testing.

    This fixture runs automatically before any tests and points the
    default key store at an in-memory provider so no test touches the
    user's real key store directory.
    """
    # Store original values to restore after tests
    original_env = {}

    test_env_vars = {
        "LOCALCERT_KEY_STORE_PROVIDER": "memory",
        "LOCALCERT_KEY_STORE_DIR": str(tmp_path_factory.mktemp("keystore")),
        "LOCALCERT_LOG_LEVEL": "DEBUG",
        "LOCALCERT_WORKER_THREADS": "2",
    }

    # Set test environment variables
    for key, value in test_env_vars.items():
        original_env[key] = os.environ.get(key)
        os.environ[key] = value
    get_settings.cache_clear()

    yield

    # Restore original environment after all tests
    for key, original_value in original_env.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value
    get_settings.cache_clear()


@pytest.fixture
def fixed_clock():
    """Clock frozen at NOW."""
    return lambda: NOW


@pytest.fixture
def memory_store() -> MemoryKeyStore:
    """In-memory key store initialized with an empty password."""
    return MemoryKeyStore(password="")


@pytest.fixture
def make_certificate():
    """
    Factory for certificates built outside the manager.

    Returns a callable producing (certificate, private_key). By default the
    certificate is a valid self-signed identity for the name at NOW.
    """

    def _make(
        name: str,
        *,
        issuer: x509.Name | None = None,
        subject: x509.Name | None = None,
        signer_key=None,
        not_before: datetime | None = None,
        not_after: datetime | None = None,
        serial: int | None = None,
    ):
        private_key = ec.generate_private_key(ec.SECP256R1())
        subject = subject or identity_subject(name)
        certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer or subject)
            .public_key(private_key.public_key())
            .serial_number(serial or x509.random_serial_number())
            .not_valid_before(not_before or NOW - timedelta(days=1))
            .not_valid_after(not_after or NOW + timedelta(days=365))
            .sign(signer_key or private_key, hashes.SHA256())
        )
        return certificate, private_key

    return _make
