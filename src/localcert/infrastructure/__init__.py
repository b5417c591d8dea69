"""
Infrastructure abstraction layer for key and certificate storage.

This module provides the key store interface and its implementations:
- local: File-based store under a user directory
- memory: Process-local store for tests and ephemeral identities

Implementations are selected via factory pattern.
"""

from localcert.infrastructure.factory import InfrastructureFactory

__all__ = ["InfrastructureFactory"]
