"""In-memory infrastructure implementations for tests and ephemeral use."""

from localcert.infrastructure.implementations.memory.key_store import MemoryKeyStore

__all__ = ["MemoryKeyStore"]
