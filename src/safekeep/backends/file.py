# Safekeep - Local File Backend
#
# Stores the encrypted safe in a single file (default ~/.safekeep.safe).
#
# Writes:  temp file in the same directory -> fsync -> os.replace, mode 0600.
#          A crash mid-write leaves the previous safe in place.
# Backup:  with storage.backup = true the previous payload is copied to
#          <path>.backup before it is replaced.
# Lock:    advisory exclusive lock on <path>.lock (flock on POSIX,
#          msvcrt.locking on Windows), released automatically if the
#          process dies.

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import IO, Optional

from ..config import StorageConfig
from ..errors import AlreadyRunning, NotInitialized, SafeIOError
from .base import BackendClient

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)

FILE_MODE = 0o600


class FileBackend(BackendClient):
    """Safe stored in a local file."""

    kind = "file"

    def __init__(self, config: StorageConfig):
        super().__init__(config)
        self.path = Path(config.path).expanduser()
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.backup_path = self.path.with_name(self.path.name + ".backup")
        self._lock_file: Optional[IO[bytes]] = None

    def safe_location(self) -> str:
        return str(self.path)

    def load(self) -> bytes:
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            raise NotInitialized() from None
        except OSError as exc:
            raise SafeIOError(f"Unable to read safe {self.path}: {exc}") from exc
        # 0-byte files are left behind by interrupted tools, not valid safes
        if not data:
            raise NotInitialized()
        return data

    def _write(self, data: bytes) -> None:
        tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.config.backup and self.path.exists():
                shutil.copy2(self.path, self.backup_path)
                os.chmod(self.backup_path, FILE_MODE)

            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise SafeIOError(f"Unable to write safe {self.path}: {exc}") from exc

    def _acquire_lock(self) -> None:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(self.lock_path, "a+b")
        except OSError as exc:
            raise SafeIOError(f"Unable to open lock file {self.lock_path}: {exc}") from exc

        try:
            if sys.platform == "win32":
                lock_file.seek(0)
                msvcrt.locking(lock_file.fileno(), msvcrt.LK_NBLCK, 1)
            else:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except (BlockingIOError, PermissionError):
            lock_file.close()
            raise AlreadyRunning() from None
        except OSError as exc:
            lock_file.close()
            raise SafeIOError(f"Unable to lock {self.lock_path}: {exc}") from exc

        self._lock_file = lock_file
        logger.debug("Acquired lock %s", self.lock_path)

    def _release_lock(self) -> None:
        lock_file, self._lock_file = self._lock_file, None
        if lock_file is None:
            return
        try:
            if sys.platform == "win32":
                lock_file.seek(0)
                msvcrt.locking(lock_file.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            lock_file.close()
        logger.debug("Released lock %s", self.lock_path)
