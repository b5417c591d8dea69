"""Tests for get-or-create and remove orchestration."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from localcert.infrastructure.implementations.memory import MemoryKeyStore
from localcert.models import (
    InvalidArgumentError,
    KeyGenerationFailedError,
    StoreUnavailableError,
    UnexpectedCertificateError,
)
from localcert.services.certificate_generator import CertificateGenerator
from localcert.services.certificate_validator import CertificateValidator
from localcert.services.key_store_gateway import KeyStoreGateway
from localcert.services.lifecycle_manager import (
    MAX_NAME_LENGTH,
    CertificateLifecycleManager,
    check_identity_name,
)
from tests.conftest import NOW


def _manager(store, clock, generator=None) -> CertificateLifecycleManager:
    gateway = KeyStoreGateway(store)
    validator = CertificateValidator(clock=clock)
    generator = generator or CertificateGenerator(gateway, clock=clock)
    return CertificateLifecycleManager(gateway, validator, generator)


class TestGetOrCreate:
    """Tests for get_or_create."""

    def test_creates_certificate_when_absent(self, memory_store, fixed_clock):
        manager = _manager(memory_store, fixed_clock)

        certificate = manager.get_or_create("device-1")

        assert certificate.subject_name == "CN=device-1"
        assert len(memory_store.entries_for("device-1")) == 1

    def test_is_idempotent(self, memory_store, fixed_clock):
        manager = _manager(memory_store, fixed_clock)

        first = manager.get_or_create("device-1")
        second = manager.get_or_create("device-1")

        assert second.serial_number == first.serial_number
        assert second.handle == first.handle
        assert len(memory_store.entries_for("device-1")) == 1

    def test_reuses_externally_imported_valid_certificate(
        self, memory_store, fixed_clock, make_certificate
    ):
        certificate, _ = make_certificate("device-1")
        memory_store.import_certificate(certificate, "device-1")
        manager = _manager(memory_store, fixed_clock)

        found = manager.get_or_create("device-1")

        assert found.certificate == certificate

    def test_regenerates_expired_certificate(self, memory_store, fixed_clock):
        old_generator = CertificateGenerator(
            KeyStoreGateway(memory_store),
            clock=lambda: NOW - timedelta(days=400),
        )
        expired = old_generator.generate("device-1")
        manager = _manager(memory_store, fixed_clock)

        renewed = manager.get_or_create("device-1")

        assert renewed.serial_number != expired.serial_number
        assert renewed.not_valid_before >= NOW - timedelta(days=1)
        assert renewed.not_valid_after > NOW
        assert len(memory_store.entries_for("device-1")) == 1

    def test_regenerates_certificate_expiring_within_grace(
        self, memory_store, fixed_clock
    ):
        # expires 12 hours after NOW
        near_expiry = CertificateGenerator(
            KeyStoreGateway(memory_store),
            clock=lambda: NOW - timedelta(days=364, hours=12),
        ).generate("device-1")
        manager = _manager(memory_store, fixed_clock)

        renewed = manager.get_or_create("device-1")

        assert renewed.serial_number != near_expiry.serial_number

    def test_names_are_isolated(self, memory_store, fixed_clock):
        manager = _manager(memory_store, fixed_clock)

        first = manager.get_or_create("device-1")
        second = manager.get_or_create("device-2")

        assert first.subject_name == "CN=device-1"
        assert second.subject_name == "CN=device-2"
        assert manager.get_or_create("device-1").serial_number == first.serial_number

    def test_foreign_certificate_blocks_regeneration(
        self, memory_store, fixed_clock, make_certificate
    ):
        other_key = ec.generate_private_key(ec.SECP256R1())
        foreign, _ = make_certificate("device-1", signer_key=other_key)
        memory_store.import_certificate(foreign, "device-1")
        manager = _manager(memory_store, fixed_clock)

        with pytest.raises(UnexpectedCertificateError):
            manager.get_or_create("device-1")

        assert [s.certificate for s in memory_store.entries_for("device-1")] == [foreign]

    def test_generation_failure_is_raised_without_retry(
        self, memory_store, fixed_clock
    ):
        generator = MagicMock(spec=CertificateGenerator)
        generator.generate.side_effect = KeyGenerationFailedError("no entropy")
        manager = _manager(memory_store, fixed_clock, generator=generator)

        with pytest.raises(KeyGenerationFailedError):
            manager.get_or_create("device-1")

        generator.generate.assert_called_once_with("device-1")

    def test_invalid_certificate_triggers_single_generation(
        self, memory_store, fixed_clock, make_certificate
    ):
        expired, _ = make_certificate(
            "device-1",
            not_before=NOW - timedelta(days=400),
            not_after=NOW - timedelta(days=35),
        )
        memory_store.import_certificate(expired, "device-1")
        gateway = KeyStoreGateway(memory_store)
        generator = CertificateGenerator(gateway, clock=fixed_clock)
        spy = MagicMock(wraps=generator)
        manager = CertificateLifecycleManager(
            gateway, CertificateValidator(clock=fixed_clock), spy
        )

        manager.get_or_create("device-1")

        spy.generate.assert_called_once_with("device-1")

    def test_unavailable_store(self, memory_store, fixed_clock):
        memory_store.available = False
        manager = _manager(memory_store, fixed_clock)

        with pytest.raises(StoreUnavailableError):
            manager.get_or_create("device-1")

    def test_empty_name_touches_nothing(self, memory_store, fixed_clock):
        manager = _manager(memory_store, fixed_clock)

        with pytest.raises(InvalidArgumentError):
            manager.get_or_create("")

        assert memory_store.access_count == 0


class TestRemove:
    """Tests for remove."""

    def test_remove_is_idempotent(self, memory_store, fixed_clock):
        manager = _manager(memory_store, fixed_clock)
        manager.get_or_create("device-1")

        manager.remove("device-1")
        manager.remove("device-1")

        assert memory_store.entries_for("device-1") == []

    def test_remove_then_create_issues_new_certificate(
        self, memory_store, fixed_clock
    ):
        manager = _manager(memory_store, fixed_clock)
        first = manager.get_or_create("device-1")

        manager.remove("device-1")
        second = manager.get_or_create("device-1")

        assert second.serial_number != first.serial_number

    def test_remove_rejects_empty_name(self, memory_store, fixed_clock):
        manager = _manager(memory_store, fixed_clock)

        with pytest.raises(InvalidArgumentError):
            manager.remove("")

        assert memory_store.access_count == 0


def test_is_login_required(fixed_clock):
    store = MemoryKeyStore(password="s3cret")
    manager = _manager(store, fixed_clock)

    assert manager.is_login_required() is True
    store.login("s3cret")
    assert manager.is_login_required() is False


@pytest.mark.parametrize(
    "name",
    [
        "",
        None,
        42,
        "x" * (MAX_NAME_LENGTH + 1),
        "é" * 40,
        "\ud800",
    ],
)
def test_check_identity_name_rejects(name):
    with pytest.raises(InvalidArgumentError):
        check_identity_name(name)


@pytest.mark.parametrize(
    "name",
    ["a", "device-1", "x" * MAX_NAME_LENGTH, "é" * 32, "name with spaces"],
)
def test_check_identity_name_accepts(name):
    check_identity_name(name)


def test_multibyte_name_over_limit_touches_nothing(memory_store, fixed_clock):
    """A name within 64 characters but over 64 UTF-8 bytes is rejected up front."""
    manager = _manager(memory_store, fixed_clock)

    with pytest.raises(InvalidArgumentError):
        manager.get_or_create("é" * 40)

    assert memory_store.access_count == 0


def test_multibyte_name_at_limit_is_issued(memory_store, fixed_clock):
    certificate = _manager(memory_store, fixed_clock).get_or_create("é" * 32)

    assert certificate.subject_name == "CN=" + "é" * 32
