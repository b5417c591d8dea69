"""
Certificate lifecycle orchestration.

get_or_create runs an explicit state machine:

    LOOKUP    -> found: VALIDATE, not found: GENERATE
    VALIDATE  -> valid: DONE, invalid: GENERATE
    GENERATE  -> success: DONE, failure: raise

so the worst case is one lookup, one validation and one generation. Every
call rebuilds its view of the store from scratch; nothing is cached between
operations. Concurrent calls for the same name are not serialized here:
the last writer wins.
"""

from enum import Enum

from loguru import logger

from localcert.models import (
    CertificateValidationError,
    InvalidArgumentError,
    LocalCertificate,
)
from localcert.services.certificate_generator import CertificateGenerator
from localcert.services.certificate_validator import CertificateValidator
from localcert.services.key_store_gateway import KeyStoreGateway

# X.509 upper bound for a common name (ub-common-name), in UTF-8 bytes
MAX_NAME_LENGTH = 64


def check_identity_name(name: str) -> None:
    """
    Reject names that cannot address a managed certificate.

    Args:
        name: Identity name

    Raises:
        InvalidArgumentError: If the name is empty, not a string or too long
    """
    if not isinstance(name, str) or not name:
        raise InvalidArgumentError("Identity name must be a non-empty string")
    try:
        encoded = name.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidArgumentError("Identity name must be valid Unicode text") from e
    if len(encoded) > MAX_NAME_LENGTH:
        raise InvalidArgumentError(
            f"Identity name must be at most {MAX_NAME_LENGTH} bytes in UTF-8"
        )


class _State(Enum):
    LOOKUP = "lookup"
    VALIDATE = "validate"
    GENERATE = "generate"
    DONE = "done"


class CertificateLifecycleManager:
    """
    Synchronous get-or-create and remove operations for identity names.

    Runs on a worker thread; see AsyncTaskRunner for dispatch.
    """

    def __init__(
        self,
        gateway: KeyStoreGateway,
        validator: CertificateValidator,
        generator: CertificateGenerator,
    ):
        self.gateway = gateway
        self.validator = validator
        self.generator = generator

    def get_or_create(self, name: str) -> LocalCertificate:
        """
        Return a valid certificate for a name, generating one if needed.

        Args:
            name: Identity name

        Returns:
            A certificate that passes validation

        Raises:
            InvalidArgumentError: If the name is invalid
            StoreUnavailableError: If the store cannot be used
            UnexpectedCertificateError: If a foreign certificate blocks regeneration
            GenerationError: If generating the replacement fails
        """
        check_identity_name(name)

        state = _State.LOOKUP
        certificate: LocalCertificate | None = None

        while state is not _State.DONE:
            if state is _State.LOOKUP:
                certificate = self.gateway.find_by_name(name)
                if certificate is None:
                    logger.info(f"No certificate stored for {name!r}")
                    state = _State.GENERATE
                else:
                    state = _State.VALIDATE

            elif state is _State.VALIDATE:
                try:
                    self.validator.validate(certificate.certificate, name)
                except CertificateValidationError as e:
                    logger.info(
                        f"Stored certificate {certificate.serial_number} for "
                        f"{name!r} is invalid ({e.reason.value}), regenerating"
                    )
                    state = _State.GENERATE
                else:
                    logger.debug(
                        f"Reusing certificate {certificate.serial_number} for {name!r}"
                    )
                    state = _State.DONE

            elif state is _State.GENERATE:
                certificate = self.generator.generate(name)
                state = _State.DONE

        return certificate

    def remove(self, name: str) -> None:
        """
        Ensure nothing is stored under a name.

        Args:
            name: Identity name

        Raises:
            InvalidArgumentError: If the name is invalid
            StoreUnavailableError: If the store cannot be used
            UnexpectedCertificateError: If a foreign certificate is stored under the name
        """
        check_identity_name(name)
        self.gateway.remove_all_for_name(name)

    def is_login_required(self) -> bool:
        """
        Check whether using the store would prompt for a password.

        Returns:
            True if a login prompt would be shown

        Raises:
            StoreUnavailableError: If the store cannot be used
        """
        return self.gateway.is_login_required()
