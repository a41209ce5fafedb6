# Safekeep Core - Shared Utilities
#
# Audit logging shared by the backends, safe and loader.

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    configure_audit_logger,
    get_audit_logger,
)

__all__ = [
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "configure_audit_logger",
    "get_audit_logger",
]
