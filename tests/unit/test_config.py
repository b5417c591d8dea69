"""Tests for library settings."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from localcert.config import Settings, get_settings


def test_defaults():
    """Test default certificate policy."""
    with patch.dict("os.environ", {}, clear=True):
        settings = Settings(_env_file=None)

    assert settings.key_store_provider == "local"
    assert settings.key_store_password == ""
    assert settings.certificate_validity_days == 365
    assert settings.certificate_backdate_days == 1
    assert settings.expiry_grace_days == 1
    assert settings.serial_number_bytes == 8
    assert settings.worker_threads == 2


def test_environment_override():
    """Test LOCALCERT_ prefixed variables override defaults."""
    with patch.dict(
        "os.environ",
        {
            "LOCALCERT_CERTIFICATE_VALIDITY_DAYS": "30",
            "LOCALCERT_KEY_STORE_DIR": "/tmp/certs",
        },
    ):
        settings = Settings(_env_file=None)

    assert settings.certificate_validity_days == 30
    assert settings.key_store_dir == "/tmp/certs"


def test_unprefixed_variables_are_ignored():
    """Test variables without the prefix do not leak into settings."""
    with patch.dict("os.environ", {"WORKER_THREADS": "9"}, clear=True):
        settings = Settings(_env_file=None)

    assert settings.worker_threads == 2


@pytest.mark.parametrize(
    "variable, value",
    [
        ("LOCALCERT_CERTIFICATE_VALIDITY_DAYS", "0"),
        ("LOCALCERT_SERIAL_NUMBER_BYTES", "20"),
        ("LOCALCERT_WORKER_THREADS", "0"),
        ("LOCALCERT_EXPIRY_GRACE_DAYS", "-1"),
    ],
)
def test_invalid_values_are_rejected(variable, value):
    """Test out-of-range policy values fail validation."""
    with patch.dict("os.environ", {variable: value}):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


def test_get_settings_is_cached():
    """Test get_settings returns the same instance until cleared."""
    assert get_settings() is get_settings()


def test_test_environment_uses_memory_store():
    """Test the session fixture points settings at the memory store."""
    assert get_settings().key_store_provider == "memory"
