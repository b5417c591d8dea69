"""
Gateway to the external key and certificate store.

Adapts KeyStore calls to the lifecycle's error taxonomy:
- unlocking (empty-password initialization, interactive login)
- lookup of the certificate stored under a name
- the "remove everything under this name" sweep

Store failures surface as StoreUnavailableError. Handles returned here are
only meant to live for the duration of one operation.
"""

from loguru import logger

from localcert.infrastructure.repositories import (
    KeyStore,
    KeyStoreError,
    StoredCertificate,
)
from localcert.models import (
    AuthDeniedError,
    CertificateValidationError,
    LocalCertificate,
    StoreUnavailableError,
    UnexpectedCertificateError,
)
from localcert.services.certificate_validator import CertificateValidator
from localcert.services.login_prompt import LoginPrompt, NonInteractivePrompt


class KeyStoreGateway:
    """
    Thin adapter over a KeyStore.

    The store is injected; nothing about its state is cached here.
    """

    def __init__(
        self,
        key_store: KeyStore,
        login_prompt: LoginPrompt | None = None,
        validator: CertificateValidator | None = None,
    ):
        """
        Args:
            key_store: Store holding keys and certificates
            login_prompt: Collaborator asked to log in to a locked store
            validator: Used to re-verify certificates before deletion
        """
        self.key_store = key_store
        self.login_prompt = login_prompt or NonInteractivePrompt()
        self.validator = validator or CertificateValidator()

    def acquire(self) -> KeyStore:
        """
        Get the store for an operation.

        Returns:
            The key store

        Raises:
            StoreUnavailableError: If the store cannot be used
        """
        try:
            available = self.key_store.is_available()
        except KeyStoreError as e:
            raise StoreUnavailableError(f"Key store check failed: {e}") from e
        if not available:
            raise StoreUnavailableError("Key store is not available")
        return self.key_store

    def _initialize_if_needed(self, key_store: KeyStore) -> None:
        try:
            if key_store.needs_user_init():
                logger.info("Key store has no password, initializing with empty one")
                key_store.init_password("")
        except KeyStoreError as e:
            raise StoreUnavailableError(f"Key store initialization failed: {e}") from e

    def _login_required(self, key_store: KeyStore) -> bool:
        try:
            return key_store.needs_login() and not key_store.is_logged_in()
        except KeyStoreError as e:
            raise StoreUnavailableError(f"Key store login state unknown: {e}") from e

    def ensure_unlocked(self) -> None:
        """
        Make the store usable, prompting for the password if needed.

        May block while the login prompt waits for the user.

        Raises:
            StoreUnavailableError: If the store cannot be used
            AuthDeniedError: If the login was refused, failed or the prompt raised
        """
        key_store = self.acquire()
        self._initialize_if_needed(key_store)

        if not self._login_required(key_store):
            return

        logger.info("Key store is locked, prompting for login")
        try:
            authenticated = self.login_prompt.authenticate(key_store)
        except Exception as e:
            logger.warning(f"Login prompt failed: {e!r}")
            raise AuthDeniedError(f"Key store login failed: {e!r}") from e
        if not authenticated:
            raise AuthDeniedError("Key store login was refused")

    def is_login_required(self) -> bool:
        """
        Check whether using the store would prompt for a password.

        Initializes an unprovisioned store with an empty password, but never
        prompts.

        Returns:
            True if a login prompt would be shown

        Raises:
            StoreUnavailableError: If the store cannot be used
        """
        key_store = self.acquire()
        self._initialize_if_needed(key_store)
        return self._login_required(key_store)

    def _find(self, name: str) -> StoredCertificate | None:
        try:
            return self.key_store.find_by_name(name)
        except KeyStoreError as e:
            raise StoreUnavailableError(f"Lookup of {name!r} failed: {e}") from e

    def find_by_name(self, name: str) -> LocalCertificate | None:
        """
        Look up the certificate stored under a name.

        Args:
            name: Identity name

        Returns:
            The certificate, or None if nothing is stored under the name

        Raises:
            StoreUnavailableError: If the lookup fails
        """
        stored = self._find(name)
        if stored is None:
            return None
        return LocalCertificate(
            name=stored.name, certificate=stored.certificate, handle=stored.handle
        )

    def remove_all_for_name(self, name: str) -> int:
        """
        Delete every certificate (and its key) stored under a name.

        Idempotent: succeeds when nothing is left. Each certificate is
        re-verified before deletion; one that was not issued by this
        manager stops the sweep and is left in place.
        Entries deleted by a concurrent caller between lookup and delete
        are skipped.

        Args:
            name: Identity name

        Returns:
            Number of certificates removed

        Raises:
            UnexpectedCertificateError: If a stored certificate is not a
                self-signed identity for the name
            StoreUnavailableError: If a lookup or deletion fails
        """
        removed = 0
        last_handle: str | None = None
        while True:
            stored = self._find(name)
            if stored is None:
                if removed:
                    logger.info(f"Removed {removed} certificate(s) for {name!r}")
                return removed

            serial = format(stored.certificate.serial_number, "X")
            # A store that silently ignores deletes would loop forever
            if stored.handle == last_handle:
                raise StoreUnavailableError(
                    f"Certificate {serial} is still present after deletion"
                )

            try:
                self.validator.validate_identity(stored.certificate, name)
            except CertificateValidationError as e:
                logger.error(
                    f"Refusing to remove certificate {serial} stored under "
                    f"{name!r}: {e.reason.value}"
                )
                raise UnexpectedCertificateError(
                    name=name,
                    serial=serial,
                    message=f"Certificate {serial} under {name!r} was not "
                    f"issued by this manager: {e.message}",
                ) from e

            try:
                self.key_store.delete_certificate_and_key(stored)
            except KeyStoreError as e:
                if self._is_still_stored(name, stored):
                    raise StoreUnavailableError(
                        f"Could not delete certificate {serial}: {e}"
                    ) from e
                logger.debug(
                    f"Certificate {serial} for {name!r} was removed concurrently"
                )
                continue

            logger.debug(f"Removed certificate {serial} for {name!r}")
            removed += 1
            last_handle = stored.handle

    def _is_still_stored(self, name: str, stored: StoredCertificate) -> bool:
        # Lookups return the oldest entry first, so a surviving entry is still first
        current = self._find(name)
        return current is not None and current.handle == stored.handle
