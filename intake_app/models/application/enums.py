# intake_app/models/application/enums.py
"""
Enums for application records.
"""

from __future__ import annotations

import enum


class LifecycleStage(str, enum.Enum):
    """Coarse workflow phase of an application."""

    STAGING = "STAGING"
    PRODUCTION = "PRODUCTION"
    ARCHIVED = "ARCHIVED"


class ApplicationStatus(str, enum.Enum):
    """Eligibility decision within a stage."""

    PENDING = "PENDING"
    ELIGIBLE = "ELIGIBLE"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    LOTTERY_READY = "LOTTERY_READY"
    AWARDED = "AWARDED"
    MERGED = "MERGED"


class LotteryStatus(str, enum.Enum):
    """Lottery outcome tracked alongside the eligibility status."""

    PENDING = "Pending"
    SHORTLISTED = "Shortlisted"
    AWARDED = "Awarded"
    NOT_AWARDED = "Not Awarded"


class AuditAction(str, enum.Enum):
    """Fixed vocabulary for audit log entries."""

    SAVE = "SAVE"
    VALIDATION_APPROVED = "VALIDATION_APPROVED"
    VALIDATION_REJECTED = "VALIDATION_REJECTED"
    ADMIN_RESET = "ADMIN_RESET"
    PROMOTED = "PROMOTED"
    ARCHIVED_DUPLICATE = "ARCHIVED_DUPLICATE"
    DUPLICATE_NOTE_APPENDED = "DUPLICATE_NOTE_APPENDED"
    DUPLICATE_IGNORED = "DUPLICATE_IGNORED"
    DUPLICATE_LINKED = "DUPLICATE_LINKED"
    MERGED_INTO = "MERGED_INTO"
    MERGE_ABSORBED = "MERGE_ABSORBED"
    LOTTERY_READY = "LOTTERY_READY"
    AWARDED = "AWARDED"
    UPLOAD = "UPLOAD"
    BULK_IMPORT = "BULK_IMPORT"


# Statuses from which a validator may (re)record an eligibility decision.
DECIDABLE_STATUSES = frozenset(
    {ApplicationStatus.PENDING, ApplicationStatus.ELIGIBLE, ApplicationStatus.NOT_ELIGIBLE}
)

DEFAULT_REJECTION_REASONS = (
    "Already awarded in same scheme",
    "Income exceeds guidelines",
    "Fake or forged documents",
    "Incomplete data/documents",
    "Other",
)
