# intake_app/models/application/__init__.py
"""
Application models package.
"""

from .enums import (
    DECIDABLE_STATUSES,
    DEFAULT_REJECTION_REASONS,
    ApplicationStatus,
    AuditAction,
    LifecycleStage,
    LotteryStatus,
)
from .models import (
    EDITABLE_FIELDS,
    IDENTITY_FIELDS,
    PERSONAL_FIELDS,
    ApplicationRecord,
    AuditLogEntry,
    DocumentVersion,
    as_utc,
)

__all__ = [
    # Models
    "ApplicationRecord",
    "AuditLogEntry",
    "DocumentVersion",
    # Enums
    "LifecycleStage",
    "ApplicationStatus",
    "LotteryStatus",
    "AuditAction",
    # Constants
    "DECIDABLE_STATUSES",
    "DEFAULT_REJECTION_REASONS",
    "EDITABLE_FIELDS",
    "IDENTITY_FIELDS",
    "PERSONAL_FIELDS",
    "as_utc",
]
