# intake_app/models/__init__.py
"""
Database models package
"""

from .application import (
    DECIDABLE_STATUSES,
    DEFAULT_REJECTION_REASONS,
    EDITABLE_FIELDS,
    IDENTITY_FIELDS,
    PERSONAL_FIELDS,
    ApplicationRecord,
    ApplicationStatus,
    AuditAction,
    AuditLogEntry,
    DocumentVersion,
    LifecycleStage,
    LotteryStatus,
    as_utc,
)
from .base import BaseModel, db, utcnow

__all__ = [
    "db",
    "BaseModel",
    "utcnow",
    # Application models
    "ApplicationRecord",
    "AuditLogEntry",
    "DocumentVersion",
    "LifecycleStage",
    "ApplicationStatus",
    "LotteryStatus",
    "AuditAction",
    "DECIDABLE_STATUSES",
    "DEFAULT_REJECTION_REASONS",
    "EDITABLE_FIELDS",
    "IDENTITY_FIELDS",
    "PERSONAL_FIELDS",
    "as_utc",
]
