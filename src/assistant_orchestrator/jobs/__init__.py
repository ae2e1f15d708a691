"""Durable job queue adapters and the polling worker."""

from assistant_orchestrator.jobs.postgres import PostgresJobQueue
from assistant_orchestrator.jobs.queue import (
    INBOUND_EVENT,
    TASK_CONTINUATION,
    ContinuationJob,
    InboundEventJob,
    InMemoryJobQueue,
    JobQueue,
    JobRecord,
    schedule_continuation,
)
from assistant_orchestrator.jobs.worker import JobWorker

__all__ = [
    "INBOUND_EVENT",
    "TASK_CONTINUATION",
    "ContinuationJob",
    "InMemoryJobQueue",
    "InboundEventJob",
    "JobQueue",
    "JobRecord",
    "JobWorker",
    "PostgresJobQueue",
    "schedule_continuation",
]
