"""
Login prompts for password-protected key stores.

The gateway asks a LoginPrompt to unlock the store only when a password is
set and this process has not logged in yet. Prompts may block for as long
as the user takes to answer.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

from loguru import logger

from localcert.infrastructure.repositories import KeyStore


class LoginPrompt(ABC):
    """Interactive authentication collaborator."""

    @abstractmethod
    def authenticate(self, key_store: KeyStore) -> bool:
        """
        Log in to a locked key store.

        Args:
            key_store: Store to log in to

        Returns:
            True if the store is now logged in, False if the user refused
        """
        pass


class NonInteractivePrompt(LoginPrompt):
    """Prompt for headless use: refuses every login."""

    def authenticate(self, key_store: KeyStore) -> bool:
        logger.warning("Key store is locked and no interactive login is available")
        return False


class PasswordPrompt(LoginPrompt):
    """
    Prompt that asks a password source and logs in with the answer.

    Usage:
        import getpass

        prompt = PasswordPrompt(lambda: getpass.getpass("Key store password: "))
    """

    def __init__(self, password_source: Callable[[], str | None]):
        """
        Args:
            password_source: Returns the password, or None if the user cancelled
        """
        self._password_source = password_source

    def authenticate(self, key_store: KeyStore) -> bool:
        password = self._password_source()
        if password is None:
            logger.info("Key store login cancelled")
            return False
        return key_store.login(password)
