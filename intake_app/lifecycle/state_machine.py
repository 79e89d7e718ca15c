"""
Lifecycle state machine for application records.

Every transition checks its preconditions before touching the record, applies
its field changes, appends exactly one audit entry, and commits through the
store's unit of work so the audit append and the field changes land together.

Allowed stage moves::

    STAGING -> PRODUCTION -> ARCHIVED
    STAGING -> ARCHIVED
    any     -> STAGING          (admin reset only)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

from intake_app.lifecycle.errors import (
    ConflictError,
    InvalidTransitionError,
    StaleWriteError,
    ValidationPreconditionError,
)
from intake_app.lifecycle.store import RecordStore
from intake_app.models import (
    DECIDABLE_STATUSES,
    EDITABLE_FIELDS,
    ApplicationRecord,
    ApplicationStatus,
    AuditAction,
    LifecycleStage,
    LotteryStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

DECISIONS = (ApplicationStatus.ELIGIBLE, ApplicationStatus.NOT_ELIGIBLE)
VALIDATABLE_STAGES = frozenset({LifecycleStage.STAGING, LifecycleStage.PRODUCTION})

_TRUE_STRINGS = {"1", "true", "yes", "y", "on"}


def _blank(value: object | None) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_field(field_name: str, value: Any) -> Any:
    """Convert loosely typed payload values (form/CSV/JSON) to column types."""

    if field_name == "is_special_category":
        if isinstance(value, bool):
            return value
        return str(value or "").strip().lower() in _TRUE_STRINGS
    if _blank(value):
        return [] if field_name == "family_members" else None
    if field_name == "income":
        try:
            return int(float(str(value).replace(",", "")))
        except ValueError as exc:
            raise ValidationPreconditionError(f"Income must be a number, got {value!r}", field=field_name) from exc
    if field_name == "physical_receipt_timestamp":
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationPreconditionError(
                f"Receipt timestamp must be an ISO date/time, got {value!r}", field=field_name
            ) from exc
    if field_name == "family_members":
        if not isinstance(value, list):
            raise ValidationPreconditionError("Family members must be a list", field=field_name)
        return value
    return str(value).strip()


def apply_payload(record: ApplicationRecord, payload: Mapping[str, Any]) -> list[str]:
    """Copy editable fields present in ``payload`` onto ``record``; returns the changed field names."""

    changed = []
    for field_name in EDITABLE_FIELDS:
        if field_name not in payload:
            continue
        value = _coerce_field(field_name, payload[field_name])
        if getattr(record, field_name) != value:
            setattr(record, field_name, value)
            changed.append(field_name)
    return changed


def _coerce_status(value: ApplicationStatus | str) -> ApplicationStatus:
    try:
        return ApplicationStatus(value)
    except ValueError as exc:
        raise ValidationPreconditionError(f"Unknown decision {value!r}", field="decision") from exc


class LifecycleStateMachine:
    """Applies stage/status transitions to records held in a :class:`RecordStore`."""

    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    # Save ----------------------------------------------------------------------

    def save_record(
        self,
        payload: Mapping[str, Any],
        actor: str,
        *,
        is_new: bool,
        expected_revision: int | None = None,
        duplicate_flags: str | None = None,
    ) -> ApplicationRecord:
        """
        Create or edit a record from a field payload.

        New records start at ``(STAGING, PENDING)``. The existence query runs
        before anything is written, so creating under a taken id leaves the
        stored record untouched. Lifecycle and validation fields in the
        payload are ignored; they only change through transitions.
        """

        app_id = str(payload.get("id") or "").strip()
        if not app_id:
            raise ValidationPreconditionError("Application id is required", field="id")

        now = self.clock()
        with self.store.unit_of_work():
            if is_new:
                if self.store.check_id_exists(app_id):
                    raise ConflictError(f"Application {app_id} already exists", record_id=app_id)
                record = ApplicationRecord(
                    id=app_id,
                    lifecycle_stage=LifecycleStage.STAGING,
                    status=ApplicationStatus.PENDING,
                    lottery_status=LotteryStatus.PENDING,
                    operator_id=actor,
                    entry_timestamp=now,
                    is_special_category=False,
                    family_members=[],
                )
            else:
                record = self.store.require(app_id)
                self._check_revision(record, expected_revision)

            changed = apply_payload(record, payload)
            if duplicate_flags is not None:
                record.duplicate_flags = duplicate_flags or None
            details = "Application created" if is_new else f"Updated fields: {', '.join(changed) or 'none'}"
            record.append_audit(AuditAction.SAVE, actor, details, at=now)
            self.store.save_record(record)

        logger.info("Saved application %s (%s) by %s", app_id, "new" if is_new else "edit", actor)
        return record

    # Validation ----------------------------------------------------------------

    def validate_decision(
        self,
        app_id: str,
        decision: ApplicationStatus | str,
        reason: str | None,
        remarks: str | None,
        actor: str,
        *,
        expected_revision: int | None = None,
    ) -> ApplicationRecord:
        """Record an eligibility decision. Re-validating appends a further audit entry."""

        status = _coerce_status(decision)
        if status not in DECISIONS:
            raise ValidationPreconditionError(
                f"Decision must be ELIGIBLE or NOT_ELIGIBLE, got {status.value}", record_id=app_id, field="decision"
            )
        reason = (reason or "").strip() or None
        remarks = (remarks or "").strip()
        if status == ApplicationStatus.NOT_ELIGIBLE and reason is None:
            raise ValidationPreconditionError(
                "A rejection reason is required to mark an application NOT_ELIGIBLE",
                record_id=app_id,
                field="rejection_reason",
            )

        now = self.clock()
        with self.store.unit_of_work():
            record = self.store.require(app_id)
            self._check_revision(record, expected_revision)
            if record.lifecycle_stage not in VALIDATABLE_STAGES:
                raise InvalidTransitionError(
                    f"Cannot validate application {app_id} in stage {record.lifecycle_stage.value}",
                    record_id=app_id,
                    field="lifecycle_stage",
                )
            if record.status not in DECIDABLE_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot validate application {app_id} with status {record.status.value}",
                    record_id=app_id,
                    field="status",
                )

            record.status = status
            record.validator_id = actor
            record.validation_timestamp = now
            record.validation_remarks = remarks
            if status == ApplicationStatus.ELIGIBLE:
                record.rejection_reason = None
                record.append_audit(AuditAction.VALIDATION_APPROVED, actor, f"Eligible. Notes: {remarks}", at=now)
            else:
                record.rejection_reason = reason
                record.append_audit(
                    AuditAction.VALIDATION_REJECTED, actor, f"Rejected: {reason}. Notes: {remarks}", at=now
                )
            self.store.save_record(record)

        logger.info("Application %s marked %s by %s", app_id, status.value, actor)
        return record

    def reset_status(self, app_id: str, actor: str) -> ApplicationRecord:
        """Send a record back to the validation queue, clearing the previous decision."""

        now = self.clock()
        with self.store.unit_of_work():
            record = self.store.require(app_id)
            previous = f"{record.lifecycle_stage.value}/{record.status.value}"
            record.lifecycle_stage = LifecycleStage.STAGING
            record.status = ApplicationStatus.PENDING
            record.rejection_reason = None
            record.validator_id = None
            record.validation_timestamp = None
            record.validation_remarks = None
            record.merged_into_id = None
            record.append_audit(
                AuditAction.ADMIN_RESET,
                actor,
                f"Reset status to PENDING for re-validation (was {previous})",
                at=now,
            )
            self.store.save_record(record)

        logger.info("Application %s reset to STAGING/PENDING by %s", app_id, actor)
        return record

    # Stage progression ---------------------------------------------------------

    def promote_to_production(self, app_id: str, actor: str) -> ApplicationRecord:
        now = self.clock()
        with self.store.unit_of_work():
            record = self.store.require(app_id)
            if record.lifecycle_stage != LifecycleStage.STAGING:
                raise InvalidTransitionError(
                    f"Only STAGING applications can be promoted; {app_id} is {record.lifecycle_stage.value}",
                    record_id=app_id,
                    field="lifecycle_stage",
                )
            record.lifecycle_stage = LifecycleStage.PRODUCTION
            record.append_audit(AuditAction.PROMOTED, actor, "Promoted to PRODUCTION", at=now)
            self.store.save_record(record)

        logger.info("Application %s promoted to PRODUCTION by %s", app_id, actor)
        return record

    def mark_lottery_ready(self, app_id: str, actor: str) -> ApplicationRecord:
        now = self.clock()
        with self.store.unit_of_work():
            record = self.store.require(app_id)
            if record.lifecycle_stage != LifecycleStage.PRODUCTION or record.status != ApplicationStatus.ELIGIBLE:
                raise InvalidTransitionError(
                    f"Application {app_id} must be PRODUCTION/ELIGIBLE to enter the lottery",
                    record_id=app_id,
                    field="status",
                )
            record.status = ApplicationStatus.LOTTERY_READY
            record.lottery_status = LotteryStatus.SHORTLISTED
            record.append_audit(AuditAction.LOTTERY_READY, actor, "Shortlisted for lottery", at=now)
            self.store.save_record(record)
        return record

    def award(self, app_id: str, actor: str) -> ApplicationRecord:
        now = self.clock()
        with self.store.unit_of_work():
            record = self.store.require(app_id)
            if record.status != ApplicationStatus.LOTTERY_READY:
                raise InvalidTransitionError(
                    f"Application {app_id} must be LOTTERY_READY to be awarded",
                    record_id=app_id,
                    field="status",
                )
            record.status = ApplicationStatus.AWARDED
            record.lottery_status = LotteryStatus.AWARDED
            record.append_audit(AuditAction.AWARDED, actor, "Awarded in lottery", at=now)
            self.store.save_record(record)
        return record

    # Duplicate archival --------------------------------------------------------

    def archive_as_duplicate(
        self,
        survivor: ApplicationRecord,
        loser: ApplicationRecord,
        actor: str,
        *,
        reason: str | None = None,
    ) -> tuple[ApplicationRecord, ApplicationRecord]:
        """
        Note the loser on the survivor and archive the loser.

        Must run inside the caller's unit of work; it stages both records but
        never commits on its own.
        """

        if loser.lifecycle_stage == LifecycleStage.ARCHIVED:
            raise InvalidTransitionError(
                f"Application {loser.id} is already archived", record_id=loser.id, field="lifecycle_stage"
            )
        now = self.clock()
        reason = (reason or "").strip() or loser.rejection_reason or "Duplicate"
        survivor.append_note(f"[System] Application {loser.id} is marked as rejected due to duplication ({reason}).")
        survivor.append_audit(
            AuditAction.DUPLICATE_NOTE_APPENDED,
            actor,
            f"Appended note regarding rejected duplicate {loser.id}",
            at=now,
        )
        self.repoint_merged_records(loser, survivor, actor, at=now)
        loser.lifecycle_stage = LifecycleStage.ARCHIVED
        loser.append_audit(AuditAction.ARCHIVED_DUPLICATE, actor, f"Resolved as duplicate of {survivor.id}", at=now)
        self.store.save_record(survivor)
        self.store.save_record(loser)
        return survivor, loser

    def repoint_merged_records(
        self,
        archived: ApplicationRecord,
        survivor: ApplicationRecord,
        actor: str,
        *,
        at: datetime | None = None,
    ) -> list[ApplicationRecord]:
        """
        Move records merged into ``archived`` over to ``survivor``.

        Keeps every MERGED record pointing at a live record. Runs inside the
        caller's unit of work.
        """

        now = at or self.clock()
        absorbed_records = self.store.records_merged_into(archived.id)
        for absorbed in absorbed_records:
            absorbed.merged_into_id = survivor.id
            absorbed.append_audit(
                AuditAction.MERGED_INTO,
                actor,
                f"Re-pointed to {survivor.id} after {archived.id} was archived",
                at=now,
            )
            self.store.save_record(absorbed)
        return absorbed_records

    # Helpers -------------------------------------------------------------------

    @staticmethod
    def _check_revision(record: ApplicationRecord, expected_revision: int | None) -> None:
        if expected_revision is not None and record.revision != int(expected_revision):
            raise StaleWriteError(
                f"Application {record.id} is at revision {record.revision}, not {expected_revision}",
                record_id=record.id,
                field="revision",
            )


__all__ = ["LifecycleStateMachine", "apply_payload", "DECISIONS"]
