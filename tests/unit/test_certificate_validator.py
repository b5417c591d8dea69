"""Tests for the certificate validator."""

from datetime import timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.x509.oid import NameOID

from localcert.models import CertificateValidationError, ValidationFailure
from localcert.models.certificate import identity_subject
from localcert.services.certificate_validator import (
    CertificateValidator,
    verify_self_signature,
)
from tests.conftest import NOW


@pytest.fixture
def validator(fixed_clock) -> CertificateValidator:
    return CertificateValidator(clock=fixed_clock)


def _reason(validator, certificate, name) -> ValidationFailure:
    with pytest.raises(CertificateValidationError) as exc_info:
        validator.validate(certificate, name)
    return exc_info.value.reason


def test_valid_self_signed_certificate_passes(validator, make_certificate):
    """A fresh self-signed certificate for the name validates."""
    certificate, _ = make_certificate("device-1")

    validator.validate(certificate, "device-1")

    assert validator.is_valid(certificate, "device-1") is True


def test_certificate_signed_by_other_key_is_not_self_signed(
    validator, make_certificate
):
    """Subject and issuer match but another key signed it."""
    other_key = ec.generate_private_key(ec.SECP256R1())
    certificate, _ = make_certificate("device-1", signer_key=other_key)

    assert verify_self_signature(certificate) is False
    assert _reason(validator, certificate, "device-1") == ValidationFailure.NOT_SELF_SIGNED


def test_self_signed_with_different_issuer_name(validator, make_certificate):
    """Own key signature but issuer name differs from subject."""
    certificate, _ = make_certificate("device-1", issuer=identity_subject("someone-else"))

    assert verify_self_signature(certificate) is True
    assert (
        _reason(validator, certificate, "device-1")
        == ValidationFailure.SUBJECT_ISSUER_MISMATCH
    )


def test_subject_for_other_name(validator, make_certificate):
    """Certificate issued to a different name fails the name check."""
    certificate, _ = make_certificate("device-2")

    assert _reason(validator, certificate, "device-1") == ValidationFailure.NAME_MISMATCH


def test_subject_with_extra_attributes_is_name_mismatch(validator, make_certificate):
    """Only a bare CN=<name> subject is accepted."""
    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, "device-1"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Example"),
        ]
    )
    certificate, _ = make_certificate("device-1", subject=subject)

    assert _reason(validator, certificate, "device-1") == ValidationFailure.NAME_MISMATCH


def test_name_comparison_is_case_sensitive(validator, make_certificate):
    certificate, _ = make_certificate("Device-1")

    assert _reason(validator, certificate, "device-1") == ValidationFailure.NAME_MISMATCH


def test_expired_certificate(validator, make_certificate):
    certificate, _ = make_certificate(
        "device-1",
        not_before=NOW - timedelta(days=400),
        not_after=NOW - timedelta(days=35),
    )

    assert (
        _reason(validator, certificate, "device-1")
        == ValidationFailure.EXPIRED_OR_NOT_YET_VALID
    )


def test_not_yet_valid_certificate(validator, make_certificate):
    certificate, _ = make_certificate(
        "device-1",
        not_before=NOW + timedelta(hours=1),
        not_after=NOW + timedelta(days=365),
    )

    assert (
        _reason(validator, certificate, "device-1")
        == ValidationFailure.EXPIRED_OR_NOT_YET_VALID
    )


def test_certificate_inside_grace_period_is_rejected(validator, make_certificate):
    """Still technically valid, but expires within the one-day grace period."""
    certificate, _ = make_certificate(
        "device-1",
        not_before=NOW - timedelta(days=364),
        not_after=NOW + timedelta(hours=12),
    )

    assert (
        _reason(validator, certificate, "device-1")
        == ValidationFailure.EXPIRED_OR_NOT_YET_VALID
    )


def test_certificate_at_grace_boundary_is_accepted(validator, make_certificate):
    """now == not_after - grace is still acceptable."""
    certificate, _ = make_certificate(
        "device-1",
        not_before=NOW,
        not_after=NOW + timedelta(days=1),
    )

    validator.validate(certificate, "device-1")


def test_custom_grace_period(fixed_clock, make_certificate):
    certificate, _ = make_certificate(
        "device-1",
        not_before=NOW - timedelta(days=1),
        not_after=NOW + timedelta(days=5),
    )

    assert CertificateValidator(timedelta(days=7), fixed_clock).is_valid(
        certificate, "device-1"
    ) is False
    assert CertificateValidator(timedelta(days=1), fixed_clock).is_valid(
        certificate, "device-1"
    ) is True


def test_checks_short_circuit_in_order(validator, make_certificate):
    """Foreign signer, wrong name and expired: the signature check reports first."""
    other_key = ec.generate_private_key(ec.SECP256R1())
    certificate, _ = make_certificate(
        "device-2",
        signer_key=other_key,
        not_before=NOW - timedelta(days=400),
        not_after=NOW - timedelta(days=35),
    )

    assert _reason(validator, certificate, "device-1") == ValidationFailure.NOT_SELF_SIGNED


def test_validate_identity_ignores_validity_window(validator, make_certificate):
    certificate, _ = make_certificate(
        "device-1",
        not_before=NOW - timedelta(days=400),
        not_after=NOW - timedelta(days=35),
    )

    validator.validate_identity(certificate, "device-1")


def test_rsa_self_signed_certificate_is_recognized():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = identity_subject("rsa-device")
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - timedelta(days=1))
        .not_valid_after(NOW + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )

    assert verify_self_signature(certificate) is True


def test_ed25519_self_signed_certificate_is_recognized():
    key = ed25519.Ed25519PrivateKey.generate()
    subject = identity_subject("ed-device")
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - timedelta(days=1))
        .not_valid_after(NOW + timedelta(days=30))
        .sign(key, None)
    )

    assert verify_self_signature(certificate) is True
