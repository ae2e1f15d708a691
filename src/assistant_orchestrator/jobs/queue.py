"""Durable job queue contract, job payloads, and the in-memory queue."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any, Literal, Protocol
from uuid import uuid4

from pydantic import BaseModel, Field

INBOUND_EVENT = "inbound_event"
TASK_CONTINUATION = "task_continuation"

JobStatus = Literal["queued", "running", "done", "dead"]


class InboundEventJob(BaseModel):
    text: str
    user_id: str
    source: str = "chat"
    metadata: dict[str, Any] = Field(default_factory=dict)
    session_id: str | None = None
    history: list[dict[str, str]] = Field(default_factory=list)


class ContinuationJob(BaseModel):
    task_id: str
    user_id: str
    # Committed step count the job was scheduled against; None skips the check.
    step_index: int | None = None


class JobRecord(BaseModel):
    id: str
    kind: str
    payload: dict[str, Any]
    status: JobStatus = "queued"
    attempts: int = 0
    dedupe_key: str | None = None
    run_after: datetime
    locked_by: str | None = None
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime


class JobQueue(Protocol):
    def enqueue(
        self,
        kind: str,
        payload: dict[str, Any],
        *,
        dedupe_key: str | None = None,
        run_after: datetime | None = None,
    ) -> JobRecord: ...

    def claim(self, worker_id: str) -> JobRecord | None: ...

    def complete(self, job_id: str) -> None: ...

    def fail(self, job_id: str, error: str, *, retry_at: datetime | None = None) -> None: ...

    def list_jobs(self, *, status: JobStatus | None = None) -> list[JobRecord]: ...


def continuation_dedupe_key(task_id: str) -> str:
    return f"task:{task_id}"


def schedule_continuation(
    queue: JobQueue,
    *,
    task_id: str,
    user_id: str,
    step_index: int | None = None,
    run_after: datetime | None = None,
) -> JobRecord:
    """Enqueue the next step for a task; at most one such job waits per task.

    When a job is already waiting, its payload is replaced so it carries the
    latest ``step_index``.
    """
    return queue.enqueue(
        TASK_CONTINUATION,
        ContinuationJob(task_id=task_id, user_id=user_id, step_index=step_index).model_dump(),
        dedupe_key=continuation_dedupe_key(task_id),
        run_after=run_after,
    )


def enqueue_inbound_event(queue: JobQueue, event: InboundEventJob) -> JobRecord:
    return queue.enqueue(INBOUND_EVENT, event.model_dump())


class InMemoryJobQueue:
    """Process-local queue with the same claim and dedupe rules as the Postgres queue."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, JobRecord] = {}

    def enqueue(
        self,
        kind: str,
        payload: dict[str, Any],
        *,
        dedupe_key: str | None = None,
        run_after: datetime | None = None,
    ) -> JobRecord:
        now = _now()
        with self._lock:
            if dedupe_key is not None:
                for job in self._jobs.values():
                    if job.dedupe_key == dedupe_key and job.status == "queued":
                        job.payload = dict(payload)
                        job.updated_at = now
                        return job.model_copy(deep=True)
            record = JobRecord(
                id=str(uuid4()),
                kind=kind,
                payload=dict(payload),
                dedupe_key=dedupe_key,
                run_after=run_after or now,
                created_at=now,
                updated_at=now,
            )
            self._jobs[record.id] = record
        return record.model_copy(deep=True)

    def claim(self, worker_id: str) -> JobRecord | None:
        now = _now()
        with self._lock:
            ready = [
                job
                for job in self._jobs.values()
                if job.status == "queued" and job.run_after <= now
            ]
            if not ready:
                return None
            job = min(ready, key=lambda item: (item.run_after, item.created_at))
            job.status = "running"
            job.attempts += 1
            job.locked_by = worker_id
            job.updated_at = now
            return job.model_copy(deep=True)

    def complete(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs[job_id]
            job.status = "done"
            job.locked_by = None
            job.updated_at = _now()

    def fail(self, job_id: str, error: str, *, retry_at: datetime | None = None) -> None:
        with self._lock:
            job = self._jobs[job_id]
            job.last_error = error
            job.locked_by = None
            job.updated_at = _now()
            if retry_at is None:
                job.status = "dead"
            elif job.dedupe_key is not None and any(
                other.dedupe_key == job.dedupe_key and other.status == "queued"
                for other in self._jobs.values()
            ):
                # A newer job with the same dedupe key is already waiting.
                job.status = "done"
                job.last_error = f"superseded after error: {error}"
            else:
                job.status = "queued"
                job.run_after = retry_at

    def list_jobs(self, *, status: JobStatus | None = None) -> list[JobRecord]:
        with self._lock:
            return [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if status is None or job.status == status
            ]


def _now() -> datetime:
    return datetime.now(UTC)
