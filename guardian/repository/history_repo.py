"""History repository: append-only verdict log with bounded reverse-chronological reads."""

import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from guardian.ai.schema import AnalysisResult, Verdict
from guardian.core.errors import PersistenceError
from guardian.models.entities import AnalysisRecord

REVERSE_CHRONOLOGICAL = "reverse_chronological"
CHRONOLOGICAL = "chronological"


def new_record_id() -> str:
    """scan_<epoch ms>_<random hex>; the random suffix keeps ids unique within one millisecond."""
    return f"scan_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


def ensure_identity(record: AnalysisResult) -> AnalysisResult:
    """Return record with id and timestamp filled in. Values already set are kept."""
    update: dict = {}
    if not record.id:
        update["id"] = new_record_id()
    if record.timestamp is None:
        update["timestamp"] = datetime.now(timezone.utc)
    return record.model_copy(update=update) if update else record


def _to_result(row: AnalysisRecord) -> AnalysisResult:
    ts = row.timestamp
    if ts is not None and ts.tzinfo is None:
        # SQLite drops the offset; values are always written in UTC.
        ts = ts.replace(tzinfo=timezone.utc)
    try:
        verdict = Verdict(row.verdict)
    except ValueError:
        verdict = Verdict.UNKNOWN
    return AnalysisResult(
        id=row.id,
        timestamp=ts,
        verdict=verdict,
        score=min(max(row.score, 0), 100),
        tactic=row.tactic,
        explanation=row.explanation,
        prompt=row.prompt,
        analysis=row.analysis,
    )


class HistoryStore:
    """
    Append-only verdict log for one session id.

    No update or delete operations exist. Reads return at most `limit` records.
    """

    def __init__(self, session_factory: Callable[[], Session], session_id: str) -> None:
        self._session_factory = session_factory
        self.session_id = session_id

    @contextmanager
    def _session_scope(self, write: bool = False) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            if write:
                session.commit()
        finally:
            session.close()

    def append(self, record: AnalysisResult) -> None:
        """
        Write record, assigning id and timestamp when missing.
        Raises PersistenceError on any database failure (including a duplicate id).
        """
        stamped = ensure_identity(record)
        row = AnalysisRecord(
            id=stamped.id,
            session_id=self.session_id,
            timestamp=stamped.timestamp,
            verdict=stamped.verdict.value,
            score=stamped.score,
            tactic=stamped.tactic,
            explanation=stamped.explanation,
            prompt=stamped.prompt,
            analysis=stamped.analysis,
        )
        try:
            with self._session_scope(write=True) as session:
                session.add(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to append record {stamped.id}: {e}") from e

    def count(self) -> int:
        """Number of records in this session's log."""
        with self._session_scope() as session:
            total = session.execute(
                select(func.count())
                .select_from(AnalysisRecord)
                .where(AnalysisRecord.session_id == self.session_id)
            ).scalar_one()
        return int(total)

    def list(self, limit: int, order: str = REVERSE_CHRONOLOGICAL) -> list[AnalysisResult]:
        """
        Return at most limit records. Reverse-chronological (newest first) by default;
        the chronological order returns the same window oldest first.
        """
        if order not in (REVERSE_CHRONOLOGICAL, CHRONOLOGICAL):
            raise ValueError(f"Unknown order: {order}")
        if limit <= 0:
            return []
        with self._session_scope() as session:
            rows = (
                session.execute(
                    select(AnalysisRecord)
                    .where(AnalysisRecord.session_id == self.session_id)
                    .order_by(AnalysisRecord.seq.desc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            results = [_to_result(row) for row in rows]
        if order == CHRONOLOGICAL:
            results.reverse()
        return results
