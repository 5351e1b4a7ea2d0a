"""Request audit logging."""

from .audit import (
    AUDIT_FILE_NAME,
    AuditEvent,
    JsonlAuditLogger,
    sanitize_arguments,
    utc_timestamp,
)

__all__ = [
    "AUDIT_FILE_NAME",
    "AuditEvent",
    "JsonlAuditLogger",
    "sanitize_arguments",
    "utc_timestamp",
]
