"""SQLite persistence for scheduled jobs and their execution history.

Architecture:
- `scheduled_jobs`: one row per job (target, payload, schedule, active flag,
  last execution). Owned by JobStore.
- `execution_history`: append-only, one row per firing attempt. Owned by
  ExecutionHistory.

Both tables live in the same database file. Each store opens its own
connection; SQLite in WAL mode handles concurrent readers and one writer.
Every sqlite3 failure is re-raised as PersistenceError.
"""
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

from loguru import logger

from ..errors import NotFoundError, PersistenceError
from ..models import Job, JobCreate
from ..schedule import utcnow
from ..types import (
    ExecutionRecord,
    MessagePayload,
    Schedule,
    format_datetime,
    parse_datetime,
    schedule_from_dict,
)

logger = logger.bind(module="scheduler.store")

# ============== SQL Schema ==============

_INIT_SQL = """
CREATE TABLE IF NOT EXISTS scheduled_jobs (
    id            TEXT PRIMARY KEY,
    target        TEXT NOT NULL,
    payload       TEXT NOT NULL DEFAULT '{}',
    schedule      TEXT NOT NULL,
    schedule_kind TEXT NOT NULL,
    active        INTEGER NOT NULL DEFAULT 1,
    created_by    TEXT NOT NULL DEFAULT '',
    last_executed TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_active ON scheduled_jobs(active);
CREATE INDEX IF NOT EXISTS idx_jobs_target ON scheduled_jobs(target);

CREATE TABLE IF NOT EXISTS execution_history (
    id            TEXT PRIMARY KEY,
    job_id        TEXT NOT NULL,
    target        TEXT NOT NULL,
    executed_at   TEXT NOT NULL,
    success       INTEGER NOT NULL,
    error         TEXT,
    receipt_id    TEXT
);

CREATE INDEX IF NOT EXISTS idx_history_job_id ON execution_history(job_id);
CREATE INDEX IF NOT EXISTS idx_history_executed ON execution_history(executed_at);
CREATE INDEX IF NOT EXISTS idx_history_success ON execution_history(success);
"""

# Columns that JobStore.update accepts
_UPDATABLE = {"target", "payload", "schedule", "active", "last_executed", "created_by"}


def _open(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = sqlite3.connect(str(db_path), check_same_thread=False)
    db.row_factory = sqlite3.Row
    db.execute("PRAGMA journal_mode=WAL")
    db.execute("PRAGMA synchronous=NORMAL")
    db.executescript(_INIT_SQL)
    return db


class _SQLiteStore:
    """Shared connection handling for the two stores."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self._db: sqlite3.Connection | None = None

    async def initialize(self) -> None:
        if self._db is not None:
            return
        try:
            self._db = _open(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e

    async def close(self) -> None:
        if self._db:
            self._db.close()
            self._db = None

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Connection]:
        if self._db is None:
            raise PersistenceError(f"{self.__class__.__name__} is not initialized")
        try:
            yield self._db
        except sqlite3.Error as e:
            self._db.rollback()
            raise PersistenceError(str(e)) from e


def _row_to_job(row: sqlite3.Row) -> Job:
    return Job(
        id=row["id"],
        target=row["target"],
        payload=MessagePayload.from_dict(json.loads(row["payload"] or "{}")),
        schedule=schedule_from_dict(json.loads(row["schedule"])),
        created_by=row["created_by"],
        active=bool(row["active"]),
        last_executed=parse_datetime(row["last_executed"]),
        created_at=parse_datetime(row["created_at"]),
        updated_at=parse_datetime(row["updated_at"]),
    )


def _column_value(name: str, value: Any) -> Any:
    """Encode a Job field for its SQLite column."""
    if name == "payload":
        return json.dumps(value.to_dict(), ensure_ascii=False)
    if name == "schedule":
        return json.dumps(value.to_dict())
    if name == "active":
        return int(bool(value))
    if isinstance(value, datetime):
        return format_datetime(value)
    return value


class JobStore(_SQLiteStore):
    """Durable record of scheduled jobs. Each call is a single transaction."""

    async def create(self, request: JobCreate) -> Job:
        """Persist a new, active job and return it with its assigned id."""
        now = utcnow()
        job = Job(
            id=str(uuid4()),
            target=request.target,
            payload=request.payload,
            schedule=request.schedule,
            created_by=request.created_by,
            active=True,
            created_at=now,
            updated_at=now,
        )
        with self._cursor() as db:
            db.execute(
                """INSERT INTO scheduled_jobs
                   (id, target, payload, schedule, schedule_kind, active,
                    created_by, last_executed, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    job.id,
                    job.target,
                    _column_value("payload", job.payload),
                    _column_value("schedule", job.schedule),
                    job.kind.value,
                    1,
                    job.created_by,
                    None,
                    format_datetime(job.created_at),
                    format_datetime(job.updated_at),
                ),
            )
            db.commit()
        logger.debug(f"Saved new job {job.id}")
        return job

    async def get(self, job_id: str) -> Job:
        """Get a job by ID.

        Raises:
            NotFoundError: no job with this id
        """
        with self._cursor() as db:
            row = db.execute(
                "SELECT * FROM scheduled_jobs WHERE id = ?", (job_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Scheduled job {job_id} not found", key=job_id)
        return _row_to_job(row)

    async def update(self, job_id: str, **fields: Any) -> Job:
        """Update the given fields of a job and return the stored result.

        Raises:
            NotFoundError: no job with this id
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update job fields: {', '.join(sorted(unknown))}")

        assignments = [f"{name} = ?" for name in fields]
        params = [_column_value(name, value) for name, value in fields.items()]
        if "schedule" in fields:
            assignments.append("schedule_kind = ?")
            params.append(fields["schedule"].kind)
        assignments.append("updated_at = ?")
        params.append(format_datetime(utcnow()))

        with self._cursor() as db:
            cursor = db.execute(
                f"UPDATE scheduled_jobs SET {', '.join(assignments)} WHERE id = ?",
                params + [job_id],
            )
            db.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"Scheduled job {job_id} not found", key=job_id)
        return await self.get(job_id)

    async def load_active_jobs(self) -> list[Job]:
        """All jobs with active = true, oldest first."""
        with self._cursor() as db:
            rows = db.execute(
                "SELECT * FROM scheduled_jobs WHERE active = 1 ORDER BY created_at ASC"
            ).fetchall()
        return [_row_to_job(row) for row in rows]

    async def list_jobs(
        self,
        target: str | None = None,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """List jobs with optional filters, plus the total matching count."""
        conditions = []
        params: list[Any] = []

        if target:
            conditions.append("target = ?")
            params.append(target)
        if active is not None:
            conditions.append("active = ?")
            params.append(int(active))

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self._cursor() as db:
            count_row = db.execute(
                f"SELECT COUNT(*) as cnt FROM scheduled_jobs {where}", params
            ).fetchone()
            rows = db.execute(
                f"SELECT * FROM scheduled_jobs {where} ORDER BY created_at ASC LIMIT ? OFFSET ?",
                params + [limit, offset],
            ).fetchall()

        total = count_row["cnt"] if count_row else 0
        return [_row_to_job(row) for row in rows], total


class ExecutionHistory(_SQLiteStore):
    """Append-only log of firing attempts."""

    async def append(self, record: ExecutionRecord) -> None:
        with self._cursor() as db:
            db.execute(
                """INSERT INTO execution_history
                   (id, job_id, target, executed_at, success, error, receipt_id)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.id,
                    record.job_id,
                    record.target,
                    format_datetime(record.executed_at),
                    int(record.success),
                    record.error,
                    record.receipt_id,
                ),
            )
            db.commit()

    async def get_records(
        self,
        job_id: str | None = None,
        target: str | None = None,
        success: bool | None = None,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[ExecutionRecord]:
        """Get execution records with filters, newest first."""
        conditions = []
        params: list[Any] = []

        if job_id:
            conditions.append("job_id = ?")
            params.append(job_id)
        if target:
            conditions.append("target = ?")
            params.append(target)
        if success is not None:
            conditions.append("success = ?")
            params.append(int(success))
        if since:
            conditions.append("executed_at >= ?")
            params.append(format_datetime(since))

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self._cursor() as db:
            rows = db.execute(
                f"SELECT * FROM execution_history {where} ORDER BY executed_at DESC LIMIT ?",
                params + [limit],
            ).fetchall()

        return [
            ExecutionRecord(
                id=row["id"],
                job_id=row["job_id"],
                target=row["target"],
                executed_at=parse_datetime(row["executed_at"]),
                success=bool(row["success"]),
                error=row["error"],
                receipt_id=row["receipt_id"],
            )
            for row in rows
        ]

    async def get_failed(self, hours: float = 24, limit: int = 100) -> list[ExecutionRecord]:
        """Failed attempts within the last `hours`."""
        since = utcnow() - timedelta(hours=hours)
        return await self.get_records(success=False, since=since, limit=limit)
