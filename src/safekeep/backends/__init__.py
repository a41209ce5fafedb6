# Safekeep Backends - Storage for the Encrypted Safe
#
# Backends are chosen by storage.kind:
#   file               -> FileBackend (local file + flock)
#   s3 / object-store  -> S3Backend (bucket object + conditional-put lock)

from typing import Dict, Type

from ..config import StorageConfig
from ..errors import InvalidConfiguration
from .base import BackendClient
from .file import FileBackend
from .s3 import S3Backend

BACKENDS: Dict[str, Type[BackendClient]] = {
    "file": FileBackend,
    "s3": S3Backend,
    "object-store": S3Backend,
}


def new_backend_client(config: StorageConfig) -> BackendClient:
    """Build the backend client described by ``config``."""
    try:
        backend_cls = BACKENDS[config.kind]
    except KeyError:
        raise InvalidConfiguration(f"Unsupported storage kind: {config.kind}") from None
    return backend_cls(config)


__all__ = ["BackendClient", "FileBackend", "S3Backend", "BACKENDS", "new_backend_client"]
