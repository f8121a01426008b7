# Core Module - Shared Utilities
#
# Core module provides shared functionality across all PixelVault modules:
# - Audit logging
# - Configuration
# - SQLite connection helpers

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_security_event,
)
from .config import (
    MAX_CIPHERTEXT_BYTES,
    MIN_SECRET_LENGTH,
    Settings,
    get_settings,
    set_settings,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "log_security_event",
    # Configuration
    "MAX_CIPHERTEXT_BYTES",
    "MIN_SECRET_LENGTH",
    "Settings",
    "get_settings",
    "set_settings",
]
