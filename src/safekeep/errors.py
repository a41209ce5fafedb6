"""
Safekeep Exception Classes

Every error the core raises derives from SafeError and carries a stable
``code`` so callers can dispatch on it without string matching.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Stable identifiers for every failure the core can report."""
    NOT_INITIALIZED = "not_initialized"
    ALREADY_INITIALIZED = "already_initialized"
    ALREADY_RUNNING = "already_running"
    AUTHENTICATION_FAILED = "authentication_failed"
    USAGE = "usage"
    IO = "io"
    NOT_WRITABLE = "not_writable"
    PASSWORD_MISMATCH = "password_mismatch"
    ENTRY_NOT_FOUND = "entry_not_found"
    ENTRY_EXISTS = "entry_exists"
    INVALID_CONFIGURATION = "invalid_configuration"
    GENERIC = "generic"


class SafeError(Exception):
    """Base exception for safe operations"""
    code = ErrorCode.GENERIC
    default_message = "safe operation failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)


class NotInitialized(SafeError):
    """Raised when no safe has been stored at the configured location"""
    code = ErrorCode.NOT_INITIALIZED
    default_message = "safe not yet initialized. Please run the init command first"


class AlreadyInitialized(SafeError):
    """Raised when init is requested for a location that already holds a safe"""
    code = ErrorCode.ALREADY_INITIALIZED
    default_message = "safe was already initialized"


class AlreadyRunning(SafeError):
    """Raised when another process holds the writable lock"""
    code = ErrorCode.ALREADY_RUNNING
    default_message = "safe is already opened for writing by another process"


class AuthenticationFailed(SafeError):
    """Raised for a wrong master password or a corrupted/tampered payload.

    Both causes deliberately share this type and message.
    """
    code = ErrorCode.AUTHENTICATION_FAILED
    default_message = "unable to decrypt safe: wrong password or corrupted data"


class UsageError(SafeError):
    """Raised when the command line is malformed"""
    code = ErrorCode.USAGE
    default_message = "invalid command usage"


class SafeIOError(SafeError):
    """Raised when the storage backend fails to read or write"""
    code = ErrorCode.IO
    default_message = "storage backend I/O failure"


class NotWritable(SafeError):
    """Raised when a write is attempted without holding the writable lock"""
    code = ErrorCode.NOT_WRITABLE
    default_message = "safe was not opened for writing"


class PasswordMismatch(SafeError):
    """Raised when password entry and confirmation differ"""
    code = ErrorCode.PASSWORD_MISMATCH
    default_message = "Master passwords do not match"


class EntryNotFound(SafeError):
    """Raised when a named entry does not exist"""
    code = ErrorCode.ENTRY_NOT_FOUND
    default_message = "entry not found"


class EntryExists(SafeError):
    """Raised when adding an entry whose name is already taken"""
    code = ErrorCode.ENTRY_EXISTS
    default_message = "entry already exists"


class InvalidConfiguration(SafeError):
    """Raised when configuration is invalid"""
    code = ErrorCode.INVALID_CONFIGURATION
    default_message = "invalid configuration"
