"""
Storage backend contract.

A backend stores one opaque encrypted blob per safe location and arbitrates
a single-writer lock for it. Backends never see plaintext or passwords.

Lock semantics:
- set_writable(True) acquires an exclusive lock for the location without
  blocking; contention raises AlreadyRunning immediately.
- set_writable(False) releases the lock if held.
- Reading does not require the lock.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from ..config import StorageConfig
from ..core import EventSeverity, EventType, get_audit_logger
from ..errors import AlreadyRunning, NotInitialized, NotWritable

logger = logging.getLogger(__name__)


class BackendClient(ABC):
    """Persists the encrypted safe and guards it with a writable lock."""

    kind = ""

    def __init__(self, config: StorageConfig):
        self.config = config
        self._writable = False

    # --- Payload ---

    @abstractmethod
    def load(self) -> bytes:
        """Return the stored ciphertext.

        Raises:
            NotInitialized: Nothing has been stored at this location yet.
            SafeIOError: The backend could not be read.
        """

    def save(self, data: bytes) -> None:
        """Atomically replace the stored ciphertext with ``data``.

        Raises:
            NotWritable: The writable lock is not held.
            SafeIOError: The write failed; the previous payload is intact.
        """
        if not self._writable:
            raise NotWritable()
        self._write(data)
        logger.debug("Wrote %d bytes to %s", len(data), self.safe_location())

    @abstractmethod
    def _write(self, data: bytes) -> None:
        ...

    def exists(self) -> bool:
        """True if a safe has been stored at this location."""
        try:
            self.load()
        except NotInitialized:
            return False
        return True

    # --- Writable lock ---

    @property
    def writable(self) -> bool:
        return self._writable

    def set_writable(self, writable: bool) -> None:
        """Acquire (True) or release (False) the exclusive writable lock."""
        audit = get_audit_logger()
        if writable and not self._writable:
            try:
                self._acquire_lock()
            except AlreadyRunning:
                audit.log_safe_event(
                    EventType.SAFE_LOCK_CONTENDED,
                    self.safe_location(),
                    "writable lock held by another process",
                    severity=EventSeverity.ALERT,
                )
                raise
            self._writable = True
            audit.log_safe_event(EventType.SAFE_LOCK_ACQUIRED, self.safe_location(), "writable lock acquired")
        elif not writable and self._writable:
            self._release_lock()
            self._writable = False
            audit.log_safe_event(EventType.SAFE_LOCK_RELEASED, self.safe_location(), "writable lock released")

    @abstractmethod
    def _acquire_lock(self) -> None:
        """Take the lock without blocking; raise AlreadyRunning if taken."""

    @abstractmethod
    def _release_lock(self) -> None:
        ...

    def close(self) -> None:
        """Release any lock held by this client."""
        self.set_writable(False)

    # --- Identity ---

    @abstractmethod
    def safe_location(self) -> str:
        """Human-readable identity of the storage target."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.safe_location()} writable={self._writable}>"
