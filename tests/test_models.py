import pytest
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from intake_app.models import (
    ApplicationRecord, ApplicationStatus, AuditAction, AuditLogEntry, DocumentVersion,
    LifecycleStage, LotteryStatus, as_utc, db
)


@pytest.fixture
def record():
    """An unsaved STAGING/PENDING application"""
    return ApplicationRecord(
        id="APP-1",
        lifecycle_stage=LifecycleStage.STAGING,
        status=ApplicationStatus.PENDING,
        applicant_name="Asha Rao",
        aadhaar="1234 5678 9012",
        phone_primary="+91 98765 43210",
    )


class TestApplicationRecord:
    """Test ApplicationRecord model behaviour"""

    def test_defaults_on_insert(self, record):
        """Test that defaults and the revision counter are set on first flush"""
        db.session.add(record)
        db.session.commit()

        assert record.revision == 1
        assert record.lottery_status == LotteryStatus.PENDING
        assert record.is_special_category is False
        assert record.created_at is not None

    def test_normalized_keys_track_raw_values(self, record):
        """Test that the indexed identity keys follow the raw columns"""
        assert record.aadhaar_key == "123456789012"
        assert record.phone_key == "9876543210"

        record.phone_primary = ""
        assert record.phone_key is None

    def test_revision_increments_on_update(self, record):
        """Test optimistic locking counter"""
        db.session.add(record)
        db.session.commit()
        record.city = "Pune"
        db.session.commit()

        assert record.revision == 2

    def test_links_are_sorted_and_unique(self, record):
        """Test link bookkeeping"""
        assert record.add_link("APP-3") is True
        assert record.add_link("APP-2") is True
        assert record.add_link("APP-3") is False

        assert record.linked_app_ids == ["APP-2", "APP-3"]
        assert record.linked_ids == frozenset({"APP-2", "APP-3"})

    def test_notes_append_on_new_line(self, record):
        record.append_note("first")
        record.append_note("second")

        assert record.notes == "first\nsecond"

    def test_to_dict(self, record):
        """Test serialization with and without the audit trail"""
        record.append_audit(AuditAction.SAVE, "operator-1", "Application created")
        db.session.add(record)
        db.session.commit()

        data = record.to_dict()
        assert data["id"] == "APP-1"
        assert data["lifecycle_stage"] == "STAGING"
        assert data["aadhaar"] == "1234 5678 9012"
        assert data["linked_app_ids"] == []
        assert data["audit_log"][0]["action"] == "SAVE"
        assert data["documents"] == []
        assert "audit_log" not in record.to_dict(include_audit=False)


class TestAuditLogEntry:
    """Test append-only audit entries"""

    def test_sequence_and_clamped_timestamps(self, record):
        later = datetime(2024, 5, 2, tzinfo=timezone.utc)
        earlier = datetime(2024, 5, 1, tzinfo=timezone.utc)

        first = record.append_audit(AuditAction.SAVE, "operator-1", at=later)
        second = record.append_audit(AuditAction.PROMOTED, "admin", at=earlier)

        assert (first.sequence, second.sequence) == (1, 2)
        assert as_utc(second.timestamp) == later

    def test_duplicate_sequence_rejected(self, record):
        """Test the per-application sequence uniqueness constraint"""
        db.session.add(record)
        db.session.commit()
        db.session.add_all([
            AuditLogEntry(application_id="APP-1", sequence=1, user_id="a", action=AuditAction.SAVE),
            AuditLogEntry(application_id="APP-1", sequence=1, user_id="b", action=AuditAction.SAVE),
        ])

        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


class TestDocumentVersion:
    def test_to_dict(self, record):
        record.documents.append(
            DocumentVersion(doc_type="Aadhaar Card", version=1, file_name="aadhaar.pdf", uploaded_by="operator-1")
        )
        db.session.add(record)
        db.session.commit()

        (doc,) = record.to_dict()["documents"]
        assert doc["doc_type"] == "Aadhaar Card"
        assert doc["version"] == 1
        assert doc["url"] is None
        assert doc["uploaded_at"] is not None


def test_as_utc_treats_naive_as_utc():
    assert as_utc(datetime(2024, 1, 1)) == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert as_utc(None) is None
