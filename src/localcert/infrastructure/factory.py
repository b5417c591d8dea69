"""
Infrastructure factory for key store selection.

Selects the key store implementation based on configuration:
- local: File-based store for a single user
- memory: Process-local store (tests, ephemeral identities)

Usage:
    from localcert.infrastructure import InfrastructureFactory
    from localcert.config import get_settings

    # Option 1: From settings
    settings = get_settings()
    factory = InfrastructureFactory.from_settings(settings)

    # Option 2: Manual configuration
    factory = InfrastructureFactory(provider="local", base_dir="~/.localcert")

    key_store = factory.get_key_store()
"""

from typing import TYPE_CHECKING, Literal

from loguru import logger

from localcert.infrastructure.repositories import KeyStore

if TYPE_CHECKING:
    from localcert.config import Settings

InfrastructureProvider = Literal["local", "memory"]


class InfrastructureFactory:
    """
    Factory for creating key store instances.

    Provides dependency injection for the lifecycle services.
    """

    def __init__(self, provider: InfrastructureProvider | None = None, **config):
        """
        Initialize infrastructure factory.

        Args:
            provider: Key store provider ("local", "memory").
                     If None, uses "local" as default.
            **config: Provider-specific configuration options (base_dir)
        """
        if provider is None:
            provider = "local"

        self.provider = provider
        self.config = config

        logger.info(f"Initialized InfrastructureFactory with provider: {provider}")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "InfrastructureFactory":
        """
        Create factory from Settings object.

        Args:
            settings: Library settings from config.py

        Returns:
            InfrastructureFactory configured from settings
        """
        config = {
            "base_dir": settings.key_store_dir,
        }

        return cls(provider=settings.key_store_provider, **config)

    def get_key_store(self) -> KeyStore:
        """
        Get key store for configured provider.

        Returns:
            KeyStore implementation

        Raises:
            ValueError: If provider is not supported
        """
        if self.provider == "local":
            from localcert.infrastructure.implementations.local import LocalKeyStore

            base_dir = self.config.get("base_dir", "./.localcert")
            return LocalKeyStore(base_dir=base_dir)

        elif self.provider == "memory":
            from localcert.infrastructure.implementations.memory import (
                MemoryKeyStore,
            )

            return MemoryKeyStore()

        else:
            raise ValueError(f"Unsupported provider: {self.provider}")
