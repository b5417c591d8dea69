"""Local file-based infrastructure implementations."""

from localcert.infrastructure.implementations.local.key_store import LocalKeyStore

__all__ = ["LocalKeyStore"]
