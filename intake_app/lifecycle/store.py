"""
Record store for application records.

Wraps the Flask-SQLAlchemy session with the lookups the detector, state
machine and resolution workflow need, plus a unit-of-work context manager
that commits once and maps database failures onto lifecycle errors.
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from typing import Iterator, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from intake_app.lifecycle.errors import (
    ConflictError,
    NotFoundError,
    StaleWriteError,
    TransientIOError,
)
from intake_app.models import ApplicationRecord, ApplicationStatus, LifecycleStage, db, utcnow

logger = logging.getLogger(__name__)


class RecordStore:
    """Repository over the ``applications`` table."""

    def __init__(self, session: Session | None = None):
        self.session = session or db.session
        self._depth = 0

    # Lookups -------------------------------------------------------------------

    def get_application_by_id(self, app_id: str | None) -> ApplicationRecord | None:
        if not app_id:
            return None
        return self.session.get(ApplicationRecord, app_id)

    def require(self, app_id: str | None) -> ApplicationRecord:
        record = self.get_application_by_id(app_id)
        if record is None:
            raise NotFoundError(f"Application {app_id} not found", record_id=app_id)
        return record

    def check_id_exists(self, app_id: str | None) -> bool:
        """Existence query used before any create; never loads the row."""
        if not app_id:
            return False
        stmt = select(func.count()).select_from(ApplicationRecord).where(ApplicationRecord.id == app_id)
        return bool(self.session.execute(stmt).scalar_one())

    def list_all_records_global(self) -> list[ApplicationRecord]:
        """Every record across projects and stages, archived included, in insertion order."""
        stmt = select(ApplicationRecord).order_by(ApplicationRecord.created_at, ApplicationRecord.id)
        return list(self.session.execute(stmt).scalars())

    def candidates_by_keys(self, keys: dict[str, Sequence[str]]) -> list[ApplicationRecord]:
        """
        Records whose indexed key columns match any of the given values.

        ``keys`` maps a key column name (``aadhaar_key``, ``phone_key``) to the
        normalized values to look up. Results keep the global insertion order.
        """
        clauses = []
        for column_name, values in keys.items():
            values = [value for value in values if value]
            if values:
                clauses.append(getattr(ApplicationRecord, column_name).in_(values))
        if not clauses:
            return []
        stmt = (
            select(ApplicationRecord)
            .where(or_(*clauses))
            .order_by(ApplicationRecord.created_at, ApplicationRecord.id)
        )
        return list(self.session.execute(stmt).scalars())

    def active_records(self, project_id: str | None = None) -> list[ApplicationRecord]:
        """Records outside the ARCHIVED stage, optionally scoped to a project."""
        stmt = select(ApplicationRecord).where(ApplicationRecord.lifecycle_stage != LifecycleStage.ARCHIVED)
        if project_id:
            stmt = stmt.where(ApplicationRecord.project_id == project_id)
        stmt = stmt.order_by(ApplicationRecord.created_at, ApplicationRecord.id)
        return list(self.session.execute(stmt).scalars())

    def validation_queue(self, project_id: str | None = None) -> list[ApplicationRecord]:
        """Staging records still waiting for an eligibility decision, oldest first."""
        stmt = select(ApplicationRecord).where(
            ApplicationRecord.lifecycle_stage == LifecycleStage.STAGING,
            ApplicationRecord.status == ApplicationStatus.PENDING,
        )
        if project_id:
            stmt = stmt.where(ApplicationRecord.project_id == project_id)
        stmt = stmt.order_by(ApplicationRecord.created_at, ApplicationRecord.id)
        return list(self.session.execute(stmt).scalars())

    def records_merged_into(self, app_id: str) -> list[ApplicationRecord]:
        stmt = (
            select(ApplicationRecord)
            .where(ApplicationRecord.merged_into_id == app_id)
            .order_by(ApplicationRecord.created_at, ApplicationRecord.id)
        )
        return list(self.session.execute(stmt).scalars())

    def count_by(self, attribute: str, project_id: str | None = None) -> dict[str, int]:
        """Row counts grouped by one column; blank values are reported as ``"Unspecified"``."""
        column = getattr(ApplicationRecord, attribute)
        stmt = select(column, func.count(ApplicationRecord.id)).group_by(column)
        if project_id:
            stmt = stmt.where(ApplicationRecord.project_id == project_id)
        counts: dict[str, int] = {}
        for key, count in self.session.execute(stmt):
            label = key.value if isinstance(key, enum.Enum) else (key or "Unspecified")
            counts[label] = counts.get(label, 0) + count
        return counts

    # Writes --------------------------------------------------------------------

    def save_record(self, record: ApplicationRecord) -> ApplicationRecord:
        """
        Stage a record for the current unit of work.

        ``updated_at`` is touched on every save so the parent row is always
        rewritten and its ``revision`` advances, even when only child rows
        (audit entries, documents) changed.
        """
        record.updated_at = utcnow()
        self.session.add(record)
        return record

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """
        Run the enclosed block as a single transaction.

        Nested blocks join the outermost one; only the outermost commits. Any
        error rolls the whole transaction back before propagating.
        """
        self._depth += 1
        try:
            yield self.session
            if self._depth == 1:
                self.session.commit()
        except StaleDataError as exc:
            self._rollback()
            raise StaleWriteError("Record was modified by another writer; reload and retry") from exc
        except IntegrityError as exc:
            self._rollback()
            raise ConflictError(f"Write violates a database integrity constraint: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            self._rollback()
            logger.exception("Unit of work failed; transaction rolled back")
            raise TransientIOError(f"Database error, nothing was saved: {exc}") from exc
        except Exception:
            self._rollback()
            raise
        finally:
            self._depth -= 1

    def _rollback(self) -> None:
        # Only the outermost block owns the transaction.
        if self._depth == 1:
            self.session.rollback()


__all__ = ["RecordStore"]
