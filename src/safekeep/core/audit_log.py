# Safekeep - Audit Logging
#
# Append-only structured log of safe lifecycle events (create, unlock,
# failed unlock, save, lock contention). One JSON object per line in a
# daily file under general.audit_dir.
#
# Never pass passwords, keys or secret values into any event.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

from ..config import DEFAULT_AUDIT_DIR


class EventType(str, Enum):
    """Types of events recorded in the audit log."""
    # Safe lifecycle
    SAFE_CREATED = "safe.created"
    SAFE_UNLOCKED = "safe.unlocked"
    SAFE_UNLOCK_FAILED = "safe.unlock.failed"
    SAFE_SAVED = "safe.saved"
    SAFE_PASSWORD_CHANGED = "safe.password.changed"
    SAFE_ERROR = "safe.error"

    # Writable lock
    SAFE_LOCK_ACQUIRED = "safe.lock.acquired"
    SAFE_LOCK_CONTENDED = "safe.lock.contended"
    SAFE_LOCK_RELEASED = "safe.lock.released"

    # Entries
    ENTRY_ACCESSED = "entry.accessed"

    # Process
    SYSTEM_START = "system.start"


class EventSeverity(str, Enum):
    """
    Severity levels for audit events.

    - INFO: Normal activity
    - ALERT: Something a user may want to look at (failed unlock, contention)
    - CRITICAL: Operation failed
    """
    INFO = "info"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only audit logger for safe events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - OS user and host context capture
    """

    # File handler installed by the most recent instance
    _file_handler: Optional[logging.Handler] = None

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ~/.safekeep/audit)
        """
        self.log_dir = Path(log_dir or DEFAULT_AUDIT_DIR).expanduser()
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_file_handler()

        self.logger = structlog.get_logger("safekeep.audit")

    def _setup_file_handler(self):
        """Route the audit logger to today's file, replacing any previous one."""
        today = datetime.now().strftime("%Y-%m-%d")
        self.log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog renders

        audit_logger = logging.getLogger("safekeep.audit")
        previous = AuditLogger._file_handler
        if previous is not None:
            audit_logger.removeHandler(previous)
            previous.close()
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        # Keep audit lines off the console
        audit_logger.propagate = False
        AuditLogger._file_handler = file_handler

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log an audit event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        self.logger.info(
            "safe_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat(),
            details=details or {},
            user_context=self._get_default_user_context(),
        )

        return event_id

    def log_safe_event(
        self,
        event_type: EventType,
        location: str,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        """Log an event about the safe stored at ``location``."""
        event_details = dict(details or {})
        event_details["location"] = location
        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Safe: {message}",
            details=event_details
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, pid)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
            "pid": os.getpid(),
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def configure_audit_logger(log_dir: Optional[Path] = None) -> AuditLogger:
    """Replace the global audit logger with one writing to ``log_dir``."""
    global _audit_logger
    _audit_logger = AuditLogger(log_dir)
    return _audit_logger


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
