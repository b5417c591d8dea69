"""
localcert - self-signed local certificate lifecycle manager.

Produces and maintains a currently valid self-signed identity certificate
(and its private key) per symbolic name, regenerating it when it is
missing, expiring or malformed.
"""

from localcert.models import LocalCertificate, LocalCertError, OperationResult
from localcert.services.local_cert_service import (
    LocalCertService,
    get_local_cert_service,
)

__version__ = "1.0.0"

__all__ = [
    "LocalCertError",
    "LocalCertService",
    "LocalCertificate",
    "OperationResult",
    "get_local_cert_service",
]
