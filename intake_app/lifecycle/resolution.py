"""
Operator-driven duplicate resolution.

Sits on top of the detector and the state machine. Each resolution touches a
survivor/loser pair inside one unit of work and appends one audit entry per
record it changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from intake_app.lifecycle.duplicates import DuplicateDetector, DuplicateFinding, serialize_findings
from intake_app.lifecycle.errors import InvalidTransitionError, ValidationPreconditionError
from intake_app.lifecycle.state_machine import LifecycleStateMachine
from intake_app.lifecycle.store import RecordStore
from intake_app.models import ApplicationRecord, ApplicationStatus, AuditAction, LifecycleStage

logger = logging.getLogger(__name__)

DEFAULT_DUPLICATE_THRESHOLD = 0.88

# Survivor fields a merge may fill from the loser when the survivor's value is blank.
MERGE_FILL_FIELDS = (
    "aadhaar",
    "phone_primary",
    "phone_alt",
    "pan",
    "bank_account",
    "ifsc",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "pincode",
)


@dataclass(frozen=True)
class DuplicateScreening:
    """Detector findings split by the operator warning threshold."""

    findings: tuple[DuplicateFinding, ...]
    blocking: tuple[DuplicateFinding, ...]
    advisory: tuple[DuplicateFinding, ...]
    threshold: float

    @property
    def requires_review(self) -> bool:
        return bool(self.blocking)

    def to_dict(self) -> dict[str, Any]:
        return {
            "threshold": self.threshold,
            "requires_review": self.requires_review,
            "findings": [finding.to_dict() for finding in self.findings],
            "blocking": [finding.to_dict() for finding in self.blocking],
            "advisory": [finding.to_dict() for finding in self.advisory],
        }


@dataclass(frozen=True)
class ResolutionResult:
    survivor: ApplicationRecord
    loser: ApplicationRecord

    def to_dict(self) -> dict[str, Any]:
        return {
            "survivor": self.survivor.to_dict(include_audit=False),
            "loser": self.loser.to_dict(include_audit=False),
        }


def _blank(value: object | None) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ResolutionWorkflow:
    """Apply ignore/link/merge/note-and-archive decisions to duplicate pairs."""

    def __init__(
        self,
        store: RecordStore,
        detector: DuplicateDetector,
        state_machine: LifecycleStateMachine,
        threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
    ):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Duplicate threshold must be between 0.0 and 1.0, got {threshold}")
        self.store = store
        self.detector = detector
        self.state_machine = state_machine
        self.threshold = threshold

    def screen(self, candidate: ApplicationRecord | Mapping[str, Any]) -> DuplicateScreening:
        findings = tuple(self.detector.find_duplicates(candidate))
        blocking = tuple(f for f in findings if f.confidence >= self.threshold)
        advisory = tuple(f for f in findings if f.confidence < self.threshold)
        return DuplicateScreening(findings, blocking, advisory, self.threshold)

    # Resolutions ---------------------------------------------------------------

    def resolve_ignore(self, survivor_id: str, loser_id: str, actor: str) -> ResolutionResult:
        """Acknowledge the warning on the loser; stage and status stay as they are."""

        with self.store.unit_of_work():
            survivor, loser = self._load_pair(survivor_id, loser_id)
            findings = self.detector.find_duplicates(loser)
            loser.duplicate_flags = serialize_findings(findings)
            loser.append_audit(
                AuditAction.DUPLICATE_IGNORED,
                actor,
                f"Duplicate warning against {survivor.id} reviewed and ignored",
                at=self.state_machine.clock(),
            )
            self.store.save_record(loser)

        logger.info("Duplicate warning %s vs %s ignored by %s", loser.id, survivor.id, actor)
        return ResolutionResult(survivor, loser)

    def resolve_link(self, survivor_id: str, loser_id: str, actor: str) -> ResolutionResult:
        """Associate both records with each other; linking an already linked pair changes nothing."""

        with self.store.unit_of_work():
            survivor, loser = self._load_pair(survivor_id, loser_id)
            if loser.id in survivor.linked_ids and survivor.id in loser.linked_ids:
                return ResolutionResult(survivor, loser)

            now = self.state_machine.clock()
            survivor.add_link(loser.id)
            loser.add_link(survivor.id)
            survivor.append_audit(AuditAction.DUPLICATE_LINKED, actor, f"Linked with {loser.id}", at=now)
            loser.append_audit(AuditAction.DUPLICATE_LINKED, actor, f"Linked with {survivor.id}", at=now)
            self.store.save_record(survivor)
            self.store.save_record(loser)

        logger.info("Applications %s and %s linked by %s", survivor.id, loser.id, actor)
        return ResolutionResult(survivor, loser)

    def resolve_merge(self, survivor_id: str, loser_id: str, actor: str) -> ResolutionResult:
        """
        Fold the loser into the survivor.

        The loser becomes ``ARCHIVED``/``MERGED`` pointing at the survivor. The
        survivor fills blank identity and address fields from the loser and
        links the loser id. Records previously merged into the loser are
        re-pointed at the survivor.

        The survivor's stage and status are left as they are: its eligibility
        decision stands, and its canonical role is recorded by the
        ``MERGE_ABSORBED`` entry, the loser id in ``linked_app_ids`` and every
        ``merged_into_id`` that now points at it.
        """

        with self.store.unit_of_work():
            survivor, loser = self._load_pair(survivor_id, loser_id)
            if loser.lifecycle_stage == LifecycleStage.ARCHIVED:
                raise InvalidTransitionError(
                    f"Application {loser.id} is archived and cannot be merged",
                    record_id=loser.id,
                    field="lifecycle_stage",
                )
            now = self.state_machine.clock()

            filled = []
            for field_name in MERGE_FILL_FIELDS:
                loser_value = getattr(loser, field_name)
                if _blank(getattr(survivor, field_name)) and not _blank(loser_value):
                    setattr(survivor, field_name, loser_value)
                    filled.append(field_name)
            survivor.add_link(loser.id)

            self.state_machine.repoint_merged_records(loser, survivor, actor, at=now)

            loser.status = ApplicationStatus.MERGED
            loser.merged_into_id = survivor.id
            loser.lifecycle_stage = LifecycleStage.ARCHIVED
            loser.append_audit(AuditAction.MERGED_INTO, actor, f"Merged into {survivor.id}", at=now)
            survivor.append_audit(
                AuditAction.MERGE_ABSORBED,
                actor,
                f"Absorbed {loser.id}; filled: {', '.join(filled) or 'none'}",
                at=now,
            )
            self.store.save_record(survivor)
            self.store.save_record(loser)

        logger.info("Application %s merged into %s by %s", loser.id, survivor.id, actor)
        return ResolutionResult(survivor, loser)

    def resolve_note_and_archive(
        self,
        survivor_id: str,
        loser: str | ApplicationRecord | Mapping[str, Any],
        actor: str,
    ) -> ResolutionResult:
        """
        Reject the loser as a duplicate of the survivor.

        ``loser`` may be an id, a record, or a mapping with ``id`` and an
        optional ``rejection_reason`` that overrides the stored one in the
        survivor's note.
        """

        reason = None
        if isinstance(loser, Mapping):
            loser_id = str(loser.get("id") or "").strip()
            reason = loser.get("rejection_reason")
        elif isinstance(loser, ApplicationRecord):
            loser_id = loser.id
        else:
            loser_id = str(loser or "").strip()

        with self.store.unit_of_work():
            survivor_record, loser_record = self._load_pair(survivor_id, loser_id)
            self.state_machine.archive_as_duplicate(survivor_record, loser_record, actor, reason=reason)

        logger.info("Application %s archived as duplicate of %s by %s", loser_id, survivor_id, actor)
        return ResolutionResult(survivor_record, loser_record)

    # Helpers -------------------------------------------------------------------

    def _load_pair(self, survivor_id: str, loser_id: str) -> tuple[ApplicationRecord, ApplicationRecord]:
        if not survivor_id:
            raise ValidationPreconditionError("Survivor id is required", field="survivor_id")
        if not loser_id:
            raise ValidationPreconditionError("Duplicate id is required", field="loser_id")
        if survivor_id == loser_id:
            raise ValidationPreconditionError(
                "An application cannot be resolved against itself", record_id=survivor_id, field="loser_id"
            )
        survivor = self.store.require(survivor_id)
        loser = self.store.require(loser_id)
        if survivor.lifecycle_stage == LifecycleStage.ARCHIVED:
            raise InvalidTransitionError(
                f"Archived application {survivor_id} cannot be the surviving record",
                record_id=survivor_id,
                field="lifecycle_stage",
            )
        return survivor, loser


__all__ = [
    "DEFAULT_DUPLICATE_THRESHOLD",
    "DuplicateScreening",
    "MERGE_FILL_FIELDS",
    "ResolutionResult",
    "ResolutionWorkflow",
]
