"""
Intake service: the save gate, bulk migration import, document metadata and
the read models behind the validation queue and dashboard.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, TextIO

from sqlalchemy.orm import Session

from config.dedupe import DedupeProfile, load_profile
from intake_app.lifecycle.duplicates import DuplicateDetector, serialize_findings
from intake_app.lifecycle.errors import ConflictError, DuplicateReviewRequired, ValidationPreconditionError
from intake_app.lifecycle.resolution import DEFAULT_DUPLICATE_THRESHOLD, DuplicateScreening, ResolutionWorkflow
from intake_app.lifecycle.state_machine import LifecycleStateMachine, apply_payload
from intake_app.lifecycle.store import RecordStore
from intake_app.models import (
    ApplicationRecord,
    ApplicationStatus,
    AuditAction,
    DocumentVersion,
    LifecycleStage,
    LotteryStatus,
)

logger = logging.getLogger(__name__)

# Column order of the migration CSV template.
CSV_COLUMNS = (
    "id",
    "project_id",
    "lifecycle_stage",
    "status",
    "applicant_name",
    "father_or_spouse_name",
    "dob",
    "gender",
    "category",
    "is_special_category",
    "aadhaar",
    "pan",
    "phone_primary",
    "phone_alt",
    "income",
    "bank_account",
    "ifsc",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "pincode",
    "physical_receipt_timestamp",
    "notes",
)

IMPORT_ACTOR = "admin_import"


@dataclass(frozen=True)
class SubmitResult:
    record: ApplicationRecord
    screening: DuplicateScreening

    def to_dict(self) -> dict[str, Any]:
        return {"application": self.record.to_dict(), "screening": self.screening.to_dict()}


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    skipped_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"imported": self.imported, "skipped": self.skipped, "skipped_ids": list(self.skipped_ids)}


class IntakeService:
    """Entry point for operators and the HTTP/CLI layers."""

    def __init__(
        self,
        store: RecordStore,
        detector: DuplicateDetector,
        state_machine: LifecycleStateMachine,
        workflow: ResolutionWorkflow,
        *,
        default_project_id: str | None = None,
    ):
        self.store = store
        self.detector = detector
        self.state_machine = state_machine
        self.workflow = workflow
        self.default_project_id = default_project_id

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        session: Session | None = None,
        *,
        profile: DedupeProfile | None = None,
    ) -> "IntakeService":
        """Wire a store, detector, state machine and workflow from a Flask config mapping."""

        store = RecordStore(session)
        detector = DuplicateDetector(
            store,
            profile or load_profile(config),
            use_index=bool(config.get("DEDUPE_USE_INDEX", False)),
        )
        state_machine = LifecycleStateMachine(store)
        workflow = ResolutionWorkflow(
            store,
            detector,
            state_machine,
            threshold=float(config.get("DUPLICATE_THRESHOLD", DEFAULT_DUPLICATE_THRESHOLD)),
        )
        return cls(
            store,
            detector,
            state_machine,
            workflow,
            default_project_id=config.get("DEFAULT_PROJECT_ID"),
        )

    # Save gate -----------------------------------------------------------------

    def submit(
        self,
        payload: Mapping[str, Any],
        actor: str,
        *,
        is_edit: bool = False,
        acknowledge_duplicates: bool = False,
        expected_revision: int | None = None,
    ) -> SubmitResult:
        """
        Save an application after the existence check and duplicate screening.

        Findings at or above the threshold stop the save with
        :class:`DuplicateReviewRequired` unless the operator acknowledged them;
        acknowledged findings are kept in ``duplicate_flags``.
        """

        app_id = str(payload.get("id") or "").strip()
        if not app_id:
            raise ValidationPreconditionError("Application id is required", field="id")

        data = dict(payload)
        data["id"] = app_id
        if not is_edit:
            if self.store.check_id_exists(app_id):
                raise ConflictError(f"Application {app_id} already exists", record_id=app_id)
            if not data.get("project_id") and self.default_project_id:
                data["project_id"] = self.default_project_id
            candidate: Mapping[str, Any] = data
        else:
            existing = self.store.require(app_id)
            candidate = {**existing.to_dict(include_audit=False), **data}

        screening = self.workflow.screen(candidate)
        if screening.requires_review and not acknowledge_duplicates:
            raise DuplicateReviewRequired(
                f"Application {app_id} matches {len(screening.blocking)} existing record(s); review required",
                record_id=app_id,
                findings=screening.blocking,
            )

        record = self.state_machine.save_record(
            data,
            actor,
            is_new=not is_edit,
            expected_revision=expected_revision,
            duplicate_flags=serialize_findings(screening.findings) or "",
        )
        return SubmitResult(record, screening)

    # Bulk import ---------------------------------------------------------------

    def bulk_import(
        self,
        payloads: Iterable[Mapping[str, Any]],
        actor: str = IMPORT_ACTOR,
        *,
        source: str = "CSV",
    ) -> ImportSummary:
        """Insert migrated records whose id is not yet taken; existing ids are skipped untouched."""

        summary = ImportSummary()
        now = self.state_machine.clock()
        seen: set[str] = set()
        with self.store.unit_of_work():
            for index, payload in enumerate(payloads):
                app_id = str(payload.get("id") or "").strip() or f"IMP-{now:%Y%m%d%H%M%S}-{index}"
                if app_id in seen or self.store.check_id_exists(app_id):
                    summary.skipped += 1
                    summary.skipped_ids.append(app_id)
                    continue
                seen.add(app_id)
                record = self._imported_record(app_id, payload, actor, now, source)
                self.store.save_record(record)
                summary.imported += 1

        logger.info("Bulk import by %s: %d imported, %d skipped", actor, summary.imported, summary.skipped)
        return summary

    def _imported_record(
        self, app_id: str, payload: Mapping[str, Any], actor: str, now, source: str
    ) -> ApplicationRecord:
        stage_raw = str(payload.get("lifecycle_stage") or "").strip().upper()
        status_raw = str(payload.get("status") or "").strip().upper()
        stage = LifecycleStage.PRODUCTION if stage_raw == LifecycleStage.PRODUCTION.value else LifecycleStage.STAGING
        if status_raw in (ApplicationStatus.ELIGIBLE.value, ApplicationStatus.NOT_ELIGIBLE.value):
            status = ApplicationStatus(status_raw)
        else:
            status = ApplicationStatus.PENDING

        record = ApplicationRecord(
            id=app_id,
            lifecycle_stage=stage,
            status=status,
            lottery_status=LotteryStatus.PENDING,
            operator_id=actor,
            entry_timestamp=now,
            is_special_category=False,
            family_members=[],
            project_id=self.default_project_id,
        )
        try:
            apply_payload(record, payload)
        except ValidationPreconditionError as exc:
            exc.record_id = app_id
            raise
        if not record.project_id:
            record.project_id = self.default_project_id
        if status == ApplicationStatus.NOT_ELIGIBLE:
            record.rejection_reason = "Imported as Rejected"
        record.notes = str(payload.get("notes") or "").strip() or f"Imported via {source}"
        record.append_audit(AuditAction.BULK_IMPORT, actor, f"Migrated from {source}", at=now)
        return record

    @staticmethod
    def read_import_csv(stream: TextIO) -> list[dict[str, str]]:
        """Parse the migration template: a header row, then one application per row in ``CSV_COLUMNS`` order."""

        rows = list(csv.reader(stream))
        payloads = []
        for row in rows[1:]:
            if not any(cell.strip() for cell in row):
                continue
            padded = list(row) + [""] * (len(CSV_COLUMNS) - len(row))
            payloads.append({name: padded[i].strip() for i, name in enumerate(CSV_COLUMNS)})
        return payloads

    # Documents -----------------------------------------------------------------

    def record_document_version(
        self,
        app_id: str,
        doc_type: str,
        file_name: str,
        url: str | None,
        actor: str,
    ) -> DocumentVersion:
        """Register metadata for a newly uploaded document; versions count from 1 per type."""

        doc_type = (doc_type or "").strip()
        file_name = (file_name or "").strip()
        if not doc_type:
            raise ValidationPreconditionError("Document type is required", record_id=app_id, field="doc_type")
        if not file_name:
            raise ValidationPreconditionError("File name is required", record_id=app_id, field="file_name")

        now = self.state_machine.clock()
        with self.store.unit_of_work():
            record = self.store.require(app_id)
            version = 1 + max((doc.version for doc in record.documents if doc.doc_type == doc_type), default=0)
            document = DocumentVersion(
                doc_type=doc_type,
                version=version,
                file_name=file_name,
                url=url,
                uploaded_by=actor,
                uploaded_at=now,
            )
            record.documents.append(document)
            record.append_audit(AuditAction.UPLOAD, actor, f"Uploaded {doc_type} (v{version})", at=now)
            self.store.save_record(record)
        return document

    # Read models ---------------------------------------------------------------

    def validation_queue(self, project_id: str | None = None) -> list[ApplicationRecord]:
        return self.store.validation_queue(project_id or self.default_project_id)

    def active_records(self, project_id: str | None = None) -> list[ApplicationRecord]:
        return self.store.active_records(project_id or self.default_project_id)

    def dashboard_stats(self, project_id: str | None = None) -> dict[str, Any]:
        project_id = project_id or self.default_project_id
        by_status = self.store.count_by("status", project_id)
        return {
            "project_id": project_id,
            "total": sum(by_status.values()),
            "eligible": by_status.get(ApplicationStatus.ELIGIBLE.value, 0),
            "not_eligible": by_status.get(ApplicationStatus.NOT_ELIGIBLE.value, 0),
            "pending": by_status.get(ApplicationStatus.PENDING.value, 0),
            "by_status": by_status,
            "by_stage": self.store.count_by("lifecycle_stage", project_id),
            "by_category": self.store.count_by("category", project_id),
            "by_gender": self.store.count_by("gender", project_id),
        }


__all__ = ["CSV_COLUMNS", "ImportSummary", "IntakeService", "SubmitResult"]
