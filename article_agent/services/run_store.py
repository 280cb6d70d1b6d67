"""Run record persistence."""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy.orm import Query, Session

from article_agent.database import SessionLocal
from article_agent.errors import NotFound
from article_agent.models.run import Run
from article_agent.schemas.run import RunFilter, RunRecord

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC datetime for DateTime columns."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class KeyedLocks:
    """One lock per key, kept only while some caller holds or waits on it."""

    def __init__(self):
        self._entries: Dict[str, list] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                # [lock, number of holders and waiters]
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]


class RunStore:
    """Durable keyed store of RunRecords.

    ``save`` overwrites the whole record and commits before returning, so a
    crash between stages always leaves the last completed stage boundary on
    disk. Writers to the same run id are serialized through ``update``; distinct
    run ids never contend.
    """

    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory
        self._locks = KeyedLocks()

    def save(self, record: RunRecord) -> RunRecord:
        """Persist the full record (overwrite semantics)."""
        db: Session = self._session_factory()
        try:
            row = db.query(Run).filter(Run.run_id == record.id).first()
            if row is None:
                row = Run(run_id=record.id)
                db.add(row)

            row.kind = record.kind.value
            row.topic_id = record.topic_id
            row.topic_version = record.topic_version
            row.status = record.status.value
            row.article_id = record.article_id
            row.document = record.model_dump(mode="json")
            row.created_at = to_db_time(record.created_at)
            row.updated_at = to_db_time(record.updated_at)
            row.completed_at = to_db_time(record.completed_at)

            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.debug(f"Run saved: {record.id} ({record.status.value})")
        return record

    def get(self, run_id: str) -> RunRecord:
        """Return the latest persisted record."""
        db: Session = self._session_factory()
        try:
            row = db.query(Run).filter(Run.run_id == run_id).first()
            if row is None:
                raise NotFound(f"Run not found: {run_id}")
            return RunRecord.model_validate(row.document)
        finally:
            db.close()

    def update(self, run_id: str, mutator: Callable[[RunRecord], Optional[bool]]) -> RunRecord:
        """Read-modify-write one record under its per-id lock.

        ``mutator`` edits the record in place. Returning ``False`` skips the
        write; raising aborts it.
        """
        with self._locks.hold(run_id):
            record = self.get(run_id)
            if mutator(record) is False:
                return record
            record.updated_at = utcnow()
            return self.save(record)

    def list(self, run_filter: Optional[RunFilter] = None) -> List[RunRecord]:
        """Records matching the filter, newest first."""
        run_filter = run_filter or RunFilter()
        db: Session = self._session_factory()
        try:
            query = self._filtered(db, run_filter).order_by(Run.created_at.desc(), Run.run_id)
            if run_filter.offset:
                query = query.offset(run_filter.offset)
            if run_filter.limit:
                query = query.limit(run_filter.limit)
            return [RunRecord.model_validate(row.document) for row in query.all()]
        finally:
            db.close()

    def count(self, run_filter: Optional[RunFilter] = None) -> int:
        """Number of records matching the filter, ignoring pagination."""
        db: Session = self._session_factory()
        try:
            return self._filtered(db, run_filter or RunFilter()).count()
        finally:
            db.close()

    def _filtered(self, db: Session, run_filter: RunFilter) -> Query:
        query = db.query(Run)
        if run_filter.topic_id:
            query = query.filter(Run.topic_id == run_filter.topic_id)
        if run_filter.status:
            query = query.filter(Run.status == run_filter.status.value)
        if run_filter.created_after:
            query = query.filter(Run.created_at >= to_db_time(run_filter.created_after))
        if run_filter.created_before:
            query = query.filter(Run.created_at <= to_db_time(run_filter.created_before))
        return query
