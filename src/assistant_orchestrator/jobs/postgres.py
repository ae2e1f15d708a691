"""PostgreSQL job queue using ``FOR UPDATE SKIP LOCKED`` claims."""

from __future__ import annotations

import json
import threading
import uuid
from datetime import UTC, datetime
from typing import Any

from assistant_orchestrator.errors import PersistenceError
from assistant_orchestrator.jobs.queue import JobRecord, JobStatus


class PostgresJobQueue:
    """Durable queue in the ``jobs`` table.

    A partial unique index on ``dedupe_key`` for queued rows keeps at most one
    waiting job per key; enqueueing a duplicate refreshes the waiting row's
    payload and returns it.
    """

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("ASSISTANT_ORCHESTRATOR_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id UUID PRIMARY KEY,
                    kind TEXT NOT NULL,
                    payload JSONB NOT NULL,
                    status TEXT NOT NULL DEFAULT 'queued',
                    attempts INTEGER NOT NULL DEFAULT 0,
                    dedupe_key TEXT,
                    run_after TIMESTAMPTZ NOT NULL,
                    locked_by TEXT,
                    last_error TEXT,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_ready
                ON jobs(run_after, created_at) WHERE status = 'queued'
                """)
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_queued_dedupe
                ON jobs(dedupe_key) WHERE status = 'queued' AND dedupe_key IS NOT NULL
                """)
            conn.commit()

    def enqueue(
        self,
        kind: str,
        payload: dict[str, Any],
        *,
        dedupe_key: str | None = None,
        run_after: datetime | None = None,
    ) -> JobRecord:
        now = _now()
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO jobs (
                    id, kind, payload, status, attempts, dedupe_key,
                    run_after, created_at, updated_at
                ) VALUES (%s, %s, %s, 'queued', 0, %s, %s, %s, %s)
                ON CONFLICT (dedupe_key) WHERE status = 'queued' AND dedupe_key IS NOT NULL
                DO UPDATE SET payload = EXCLUDED.payload, updated_at = EXCLUDED.updated_at
                RETURNING *
                """,
                (
                    uuid.uuid4(),
                    kind,
                    self._json_wrapper(payload),
                    dedupe_key,
                    run_after or now,
                    now,
                    now,
                ),
            ).fetchone()
            if row is None:
                row = conn.execute(
                    "SELECT * FROM jobs WHERE dedupe_key = %s AND status = 'queued'",
                    (dedupe_key,),
                ).fetchone()
            conn.commit()
        if row is None:
            raise PersistenceError(f"Failed to enqueue {kind} job")
        return self._row_to_job(row)

    def claim(self, worker_id: str) -> JobRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                UPDATE jobs
                SET status = 'running',
                    attempts = attempts + 1,
                    locked_by = %s,
                    updated_at = %s
                WHERE id = (
                    SELECT id FROM jobs
                    WHERE status = 'queued' AND run_after <= %s
                    ORDER BY run_after, created_at
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING *
                """,
                (worker_id, _now(), _now()),
            ).fetchone()
            conn.commit()
        return self._row_to_job(row) if row else None

    def complete(self, job_id: str) -> None:
        self._set_status(job_id, "done")

    def fail(self, job_id: str, error: str, *, retry_at: datetime | None = None) -> None:
        if retry_at is None:
            self._set_status(job_id, "dead", error=error)
            return
        with self._lock, self._connect() as conn:
            try:
                conn.execute(
                    """
                    UPDATE jobs
                    SET status = 'queued',
                        run_after = %s,
                        locked_by = NULL,
                        last_error = %s,
                        updated_at = %s
                    WHERE id::text = %s
                    """,
                    (retry_at, error, _now(), job_id),
                )
                conn.commit()
            except self._psycopg.errors.UniqueViolation:
                # A newer job with the same dedupe key is already waiting.
                conn.rollback()
                conn.execute(
                    """
                    UPDATE jobs
                    SET status = 'done', locked_by = NULL, last_error = %s, updated_at = %s
                    WHERE id::text = %s
                    """,
                    (f"superseded after error: {error}", _now(), job_id),
                )
                conn.commit()

    def list_jobs(self, *, status: JobStatus | None = None) -> list[JobRecord]:
        with self._lock, self._connect() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM jobs ORDER BY created_at").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM jobs WHERE status = %s ORDER BY created_at", (status,)
                ).fetchall()
        return [self._row_to_job(row) for row in rows]

    def _set_status(self, job_id: str, status: JobStatus, *, error: str | None = None) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                UPDATE jobs
                SET status = %s,
                    locked_by = NULL,
                    last_error = COALESCE(%s, last_error),
                    updated_at = %s
                WHERE id::text = %s
                """,
                (status, error, _now(), job_id),
            )
            conn.commit()

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL job queue requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _row_to_job(row: Any) -> JobRecord:
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return JobRecord(
            id=str(row["id"]),
            kind=row["kind"],
            payload=payload if isinstance(payload, dict) else {},
            status=row["status"],
            attempts=int(row["attempts"]),
            dedupe_key=row["dedupe_key"],
            run_after=row["run_after"],
            locked_by=row["locked_by"],
            last_error=row["last_error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _now() -> datetime:
    return datetime.now(tz=UTC)
