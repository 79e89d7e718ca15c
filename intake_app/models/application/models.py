"""
SQLAlchemy models for housing scheme applications.

An application is never hard-deleted. Its audit trail lives in a child table
whose rows are append-only: the ORM rejects any attempt to update or delete
them once flushed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Enum, ForeignKey, Index, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from intake_app.lifecycle.errors import AuditLogImmutableError
from intake_app.lifecycle.identity import normalize_aadhaar, normalize_phone

from ..base import BaseModel, db, utcnow
from .enums import ApplicationStatus, AuditAction, LifecycleStage, LotteryStatus

IDENTITY_FIELDS = ("aadhaar", "phone_primary", "phone_alt", "pan", "bank_account")

PERSONAL_FIELDS = (
    "applicant_name",
    "father_or_spouse_name",
    "dob",
    "gender",
    "category",
    "is_special_category",
    "ifsc",
    "income",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "pincode",
    "family_members",
    "physical_receipt_timestamp",
)

# Fields an operator may set through a save; lifecycle and validation fields
# only change through state machine transitions.
EDITABLE_FIELDS = ("project_id",) + IDENTITY_FIELDS + PERSONAL_FIELDS


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on load; treat naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ApplicationRecord(BaseModel):
    """A single housing scheme application keyed by its application number."""

    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    project_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True, index=True)
    lifecycle_stage: Mapped[LifecycleStage] = mapped_column(
        Enum(LifecycleStage, name="lifecycle_stage_enum"),
        nullable=False,
        default=LifecycleStage.STAGING,
        index=True,
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status_enum"),
        nullable=False,
        default=ApplicationStatus.PENDING,
        index=True,
    )
    lottery_status: Mapped[LotteryStatus] = mapped_column(
        Enum(LotteryStatus, name="lottery_status_enum"),
        nullable=False,
        default=LotteryStatus.PENDING,
    )

    # Identity signals used for duplicate detection
    aadhaar: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    phone_primary: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    phone_alt: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    pan: Mapped[str | None] = mapped_column(db.String(16), nullable=True)
    bank_account: Mapped[str | None] = mapped_column(db.String(34), nullable=True)
    aadhaar_key: Mapped[str | None] = mapped_column(db.String(32), nullable=True, index=True)
    phone_key: Mapped[str | None] = mapped_column(db.String(32), nullable=True, index=True)

    # Applicant details
    applicant_name: Mapped[str | None] = mapped_column(db.String(200), nullable=True)
    father_or_spouse_name: Mapped[str | None] = mapped_column(db.String(200), nullable=True)
    dob: Mapped[str | None] = mapped_column(db.String(10), nullable=True)
    gender: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    category: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    is_special_category: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    ifsc: Mapped[str | None] = mapped_column(db.String(11), nullable=True)
    income: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    address_line1: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    address_line2: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    pincode: Mapped[str | None] = mapped_column(db.String(10), nullable=True)
    family_members: Mapped[list | None] = mapped_column(db.JSON, nullable=True)

    # Intake metadata
    operator_id: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    entry_timestamp: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    physical_receipt_timestamp: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)

    # Validation decision
    rejection_reason: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    validator_id: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    validation_timestamp: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)
    validation_remarks: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    # Duplicate resolution
    duplicate_flags: Mapped[str | None] = mapped_column(
        db.Text,
        nullable=True,
        comment="Serialized duplicate findings for reporting; detection is always recomputed.",
    )
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    merged_into_id: Mapped[str | None] = mapped_column(
        ForeignKey("applications.id"),
        nullable=True,
        index=True,
    )
    linked_app_ids: Mapped[list | None] = mapped_column(db.JSON, nullable=True)

    revision: Mapped[int] = mapped_column(db.Integer, nullable=False)

    audit_log = relationship(
        "AuditLogEntry",
        back_populates="application",
        order_by="AuditLogEntry.sequence",
        cascade="save-update, merge",
        lazy="selectin",
    )
    documents = relationship(
        "DocumentVersion",
        back_populates="application",
        order_by="DocumentVersion.id",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": revision}
    __table_args__ = (
        Index("idx_applications_project_stage_status", "project_id", "lifecycle_stage", "status"),
    )

    def __repr__(self):
        return f"<ApplicationRecord {self.id} {self.lifecycle_stage.value}/{self.status.value}>"

    @validates("aadhaar")
    def _sync_aadhaar_key(self, key, value):
        self.aadhaar_key = normalize_aadhaar(value)
        return value

    @validates("phone_primary")
    def _sync_phone_key(self, key, value):
        self.phone_key = normalize_phone(value)
        return value

    # Audit trail ---------------------------------------------------------------

    def append_audit(
        self,
        action: AuditAction,
        user_id: str,
        details: str | None = None,
        *,
        at: datetime | None = None,
    ) -> "AuditLogEntry":
        """Append an audit entry, keeping sequence and timestamps monotonic."""

        timestamp = as_utc(at) or utcnow()
        sequence = 1
        if self.audit_log:
            last = self.audit_log[-1]
            sequence = last.sequence + 1
            last_timestamp = as_utc(last.timestamp)
            if last_timestamp and last_timestamp > timestamp:
                timestamp = last_timestamp
        entry = AuditLogEntry(
            sequence=sequence,
            timestamp=timestamp,
            user_id=user_id,
            action=action,
            details=details,
        )
        self.audit_log.append(entry)
        return entry

    def append_note(self, text: str) -> None:
        self.notes = f"{self.notes}\n{text}" if self.notes else text

    # Links ---------------------------------------------------------------------

    @property
    def linked_ids(self) -> frozenset[str]:
        return frozenset(self.linked_app_ids or ())

    def add_link(self, other_id: str) -> bool:
        """Link another record id; returns False when already linked."""
        if other_id in self.linked_ids:
            return False
        # Reassign so the JSON column registers the change
        self.linked_app_ids = sorted(self.linked_ids | {other_id})
        return True

    # Serialization -------------------------------------------------------------

    def to_dict(self, *, include_audit: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "project_id": self.project_id,
            "lifecycle_stage": self.lifecycle_stage.value,
            "status": self.status.value,
            "lottery_status": self.lottery_status.value,
            "operator_id": self.operator_id,
            "entry_timestamp": _isoformat(self.entry_timestamp),
            "rejection_reason": self.rejection_reason,
            "validator_id": self.validator_id,
            "validation_timestamp": _isoformat(self.validation_timestamp),
            "validation_remarks": self.validation_remarks,
            "duplicate_flags": self.duplicate_flags,
            "notes": self.notes,
            "merged_into_id": self.merged_into_id,
            "linked_app_ids": sorted(self.linked_ids),
            "revision": self.revision,
        }
        for field_name in IDENTITY_FIELDS + PERSONAL_FIELDS:
            value = getattr(self, field_name)
            data[field_name] = _isoformat(value) if isinstance(value, datetime) else value
        if include_audit:
            data["audit_log"] = [entry.to_dict() for entry in self.audit_log]
            data["documents"] = [doc.to_dict() for doc in self.documents]
        return data


class AuditLogEntry(BaseModel):
    """Immutable record of who did what, and when, to an application."""

    __tablename__ = "application_audit_log"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[str] = mapped_column(
        ForeignKey("applications.id"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(db.Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    user_id: Mapped[str] = mapped_column(db.String(100), nullable=False)
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, name="audit_action_enum"),
        nullable=False,
        index=True,
    )
    details: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    application = relationship("ApplicationRecord", back_populates="audit_log")

    __table_args__ = (
        UniqueConstraint("application_id", "sequence", name="uq_audit_log_application_sequence"),
    )

    def __repr__(self):
        return f"<AuditLogEntry {self.application_id}#{self.sequence} {self.action.value}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "timestamp": _isoformat(self.timestamp),
            "user_id": self.user_id,
            "action": self.action.value,
            "details": self.details,
        }


class DocumentVersion(BaseModel):
    """Metadata for one uploaded version of an application document."""

    __tablename__ = "application_documents"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[str] = mapped_column(
        ForeignKey("applications.id"),
        nullable=False,
        index=True,
    )
    doc_type: Mapped[str] = mapped_column(db.String(100), nullable=False)
    version: Mapped[int] = mapped_column(db.Integer, nullable=False)
    file_name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    url: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    uploaded_by: Mapped[str] = mapped_column(db.String(100), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    application = relationship("ApplicationRecord", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("application_id", "doc_type", "version", name="uq_documents_app_type_version"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "doc_type": self.doc_type,
            "version": self.version,
            "file_name": self.file_name,
            "url": self.url,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": _isoformat(self.uploaded_at),
        }


def _isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


@event.listens_for(AuditLogEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(
        f"Audit entry {target.application_id}#{target.sequence} cannot be modified",
        record_id=target.application_id,
    )


@event.listens_for(AuditLogEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(
        f"Audit entry {target.application_id}#{target.sequence} cannot be deleted",
        record_id=target.application_id,
    )
