# Safekeep - Encrypted Secret Safe
#
# A master-password protected collection of named secrets. The whole
# collection is encrypted as one blob and stored on a pluggable backend
# (local file or S3), with a single-writer lock per safe location.

__version__ = "0.1.0"
__author__ = "Safekeep Team"
__description__ = "Password-protected secret safe with pluggable storage backends"

from .config import Config
from .errors import (
    AlreadyInitialized,
    AlreadyRunning,
    AuthenticationFailed,
    NotInitialized,
    SafeError,
    SafeIOError,
    UsageError,
)
from .safe import Safe, SecretEntry
from .loader import SafeLoader, initialize_safe

__all__ = [
    "__version__",
    "Config",
    "Safe",
    "SecretEntry",
    "SafeLoader",
    "initialize_safe",
    "SafeError",
    "NotInitialized",
    "AlreadyInitialized",
    "AlreadyRunning",
    "AuthenticationFailed",
    "SafeIOError",
    "UsageError",
]
