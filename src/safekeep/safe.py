# Safekeep - The Safe
#
# In-memory decrypted collection of named secrets.
#
# Security:
# - The whole collection is serialized, encrypted and written as one blob
#   on every save (no partial updates, no journal)
# - The master password stays in process memory only
# - A wrong password never changes the stored blob
# - Mutations only set the dirty flag; nothing is written until save()

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .backends import BackendClient
from .config import Config
from .core import EventSeverity, EventType, get_audit_logger
from .crypto import CryptoClient
from .errors import (
    AlreadyInitialized,
    AuthenticationFailed,
    EntryExists,
    EntryNotFound,
    NotInitialized,
    NotWritable,
    SafeError,
    SafeIOError,
)

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SecretEntry:
    """One named secret plus caller-defined metadata."""
    value: str
    username: str = ""
    notes: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=_now)
    modified_at: str = field(default_factory=_now)
    # Previous values, oldest first: {"value": ..., "archived_at": ...}
    history: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecretEntry":
        return cls(
            value=data["value"],
            username=data.get("username", ""),
            notes=data.get("notes", ""),
            metadata=dict(data.get("metadata", {})),
            created_at=data.get("created_at", ""),
            modified_at=data.get("modified_at", ""),
            history=[dict(h) for h in data.get("history", [])],
        )


class Safe:
    """
    Decrypted secret collection bound to the backend and crypto client
    it was loaded with.

    Usage:
        safe = Safe.load(password, backend, crypto, config)
        safe.add("email", "secret123")
        safe.save()
        safe.close()
    """

    def __init__(
        self,
        password: bytes,
        backend: BackendClient,
        crypto: CryptoClient,
        config: Config,
        entries: Optional[Dict[str, SecretEntry]] = None,
    ):
        self._password = password
        self.backend = backend
        self.crypto = crypto
        self.config = config
        self.entries: Dict[str, SecretEntry] = entries or {}
        self._dirty = False

    # ── Construction ─────────────────────────────────────────────────

    @classmethod
    def initialize(
        cls,
        password: bytes,
        backend: BackendClient,
        crypto: CryptoClient,
        config: Config,
    ) -> "Safe":
        """
        Create and persist an empty safe protected by ``password``.

        Raises:
            AlreadyInitialized: The backend already holds data (nothing is written)
            NotWritable: The backend's writable lock is not held
            SafeIOError: The write failed
        """
        try:
            backend.load()
        except NotInitialized:
            pass
        else:
            raise AlreadyInitialized()

        if not backend.writable:
            raise NotWritable()

        safe = cls(password, backend, crypto, config)
        safe.save()

        get_audit_logger().log_safe_event(
            EventType.SAFE_CREATED,
            backend.safe_location(),
            "initialized with master password",
        )
        return safe

    @classmethod
    def load(
        cls,
        password: bytes,
        backend: BackendClient,
        crypto: CryptoClient,
        config: Config,
    ) -> "Safe":
        """
        Read, decrypt and deserialize the safe.

        Raises:
            NotInitialized: Nothing stored at the backend location
            AuthenticationFailed: Wrong password or corrupted ciphertext
            SafeIOError: The backend could not be read
        """
        ciphertext = backend.load()
        try:
            plaintext = crypto.decrypt(password, ciphertext)
        except AuthenticationFailed:
            get_audit_logger().log_safe_event(
                EventType.SAFE_UNLOCK_FAILED,
                backend.safe_location(),
                "unlock failed: incorrect password or corrupted safe",
                severity=EventSeverity.ALERT,
            )
            raise

        entries = cls._deserialize(plaintext)
        get_audit_logger().log_safe_event(
            EventType.SAFE_UNLOCKED,
            backend.safe_location(),
            "unlocked",
            details={"entries": len(entries), "writable": backend.writable},
        )
        return cls(password, backend, crypto, config, entries)

    # ── Serialization ────────────────────────────────────────────────

    def _serialize(self) -> bytes:
        payload = {
            "version": PAYLOAD_VERSION,
            "entries": {name: entry.to_dict() for name, entry in self.entries.items()},
        }
        return json.dumps(payload, sort_keys=True).encode("utf-8")

    @staticmethod
    def _deserialize(plaintext: bytes) -> Dict[str, SecretEntry]:
        try:
            payload = json.loads(plaintext.decode("utf-8"))
            if payload.get("version") != PAYLOAD_VERSION:
                raise ValueError(f"unsupported payload version {payload.get('version')!r}")
            return {
                name: SecretEntry.from_dict(data)
                for name, data in payload["entries"].items()
            }
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise SafeError(f"Safe payload is malformed: {exc}") from exc

    # ── Persistence ──────────────────────────────────────────────────

    @property
    def dirty(self) -> bool:
        """True if there are changes not yet written by save()."""
        return self._dirty

    def save(self) -> None:
        """
        Encrypt and write the entire collection.

        Raises:
            NotWritable: The writable lock is not held
            SafeIOError: The backend write failed (previous payload intact,
                         dirty flag stays set)
        """
        if not self.backend.writable:
            raise NotWritable()

        ciphertext = self.crypto.encrypt(self._password, self._serialize())
        try:
            self.backend.save(ciphertext)
        except SafeIOError as exc:
            get_audit_logger().log_safe_event(
                EventType.SAFE_ERROR,
                self.backend.safe_location(),
                f"save failed: {exc}",
                severity=EventSeverity.CRITICAL,
            )
            raise

        self._dirty = False
        get_audit_logger().log_safe_event(
            EventType.SAFE_SAVED,
            self.backend.safe_location(),
            "saved",
            details={"entries": len(self.entries)},
        )

    def close(self) -> None:
        """Release the backend's writable lock. Unsaved changes are discarded."""
        if self._dirty:
            logger.warning("Closing safe %s with unsaved changes", self.backend.safe_location())
        self.backend.close()

    def __enter__(self) -> "Safe":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Reads ────────────────────────────────────────────────────────

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def names(self) -> List[str]:
        return sorted(self.entries)

    def get(self, name: str) -> SecretEntry:
        try:
            entry = self.entries[name]
        except KeyError:
            raise EntryNotFound(f"Entry not found: {name}") from None
        get_audit_logger().log_safe_event(
            EventType.ENTRY_ACCESSED,
            self.backend.safe_location(),
            "entry accessed",
            details={"entry": name},
        )
        return entry

    def export(self) -> Dict[str, Dict[str, Any]]:
        """Plain dict copy of every entry, keyed by name."""
        return {name: self.entries[name].to_dict() for name in self.names()}

    # ── Mutations (set dirty, never write through) ───────────────────

    def add(
        self,
        name: str,
        value: str,
        username: str = "",
        notes: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SecretEntry:
        if not name:
            raise SafeError("Entry name must not be empty")
        if name in self.entries:
            raise EntryExists(f"Entry already exists: {name}")
        entry = SecretEntry(value=value, username=username, notes=notes, metadata=dict(metadata or {}))
        self.entries[name] = entry
        self._dirty = True
        return entry

    def edit(
        self,
        name: str,
        value: Optional[str] = None,
        username: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SecretEntry:
        """Update fields of an existing entry; a changed value is archived in history."""
        if name not in self.entries:
            raise EntryNotFound(f"Entry not found: {name}")
        entry = self.entries[name]
        now = _now()
        if value is not None and value != entry.value:
            entry.history.append({"value": entry.value, "archived_at": now})
            entry.value = value
        if username is not None:
            entry.username = username
        if notes is not None:
            entry.notes = notes
        if metadata is not None:
            entry.metadata = dict(metadata)
        entry.modified_at = now
        self._dirty = True
        return entry

    def remove(self, name: str) -> None:
        if name not in self.entries:
            raise EntryNotFound(f"Entry not found: {name}")
        del self.entries[name]
        self._dirty = True

    def move(self, old_name: str, new_name: str) -> None:
        if old_name not in self.entries:
            raise EntryNotFound(f"Entry not found: {old_name}")
        if new_name in self.entries:
            raise EntryExists(f"Entry already exists: {new_name}")
        self.entries[new_name] = self.entries.pop(old_name)
        self._dirty = True

    def copy(self, src: str, dst: str) -> None:
        if src not in self.entries:
            raise EntryNotFound(f"Entry not found: {src}")
        if dst in self.entries:
            raise EntryExists(f"Entry already exists: {dst}")
        self.entries[dst] = SecretEntry.from_dict(self.entries[src].to_dict())
        self._dirty = True

    def change_password(self, new_password: bytes) -> None:
        """Use ``new_password`` for the next save()."""
        if not new_password:
            raise SafeError("Master password must not be empty")
        self._password = new_password
        self._dirty = True
        get_audit_logger().log_safe_event(
            EventType.SAFE_PASSWORD_CHANGED,
            self.backend.safe_location(),
            "master password changed (pending save)",
        )
