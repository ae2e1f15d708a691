from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from assistant_orchestrator.jobs import (
    INBOUND_EVENT,
    TASK_CONTINUATION,
    InMemoryJobQueue,
    JobWorker,
    schedule_continuation,
)
from assistant_orchestrator.jobs.queue import InboundEventJob, enqueue_inbound_event
from assistant_orchestrator.runtime import build_runtime
from assistant_orchestrator.storage.memory import InMemoryStorage

from fakes import FakeEmbedder, ScriptedGateway, call, tool_reply


def test_continuations_are_deduplicated_per_task(queue) -> None:
    first = schedule_continuation(queue, task_id="t-1", user_id="u-1")
    again = schedule_continuation(queue, task_id="t-1", user_id="u-1")
    other = schedule_continuation(queue, task_id="t-2", user_id="u-1")

    assert again.id == first.id
    assert other.id != first.id
    assert len(queue.list_jobs(status="queued")) == 2


def test_dedupe_only_applies_while_queued(queue) -> None:
    first = schedule_continuation(queue, task_id="t-1", user_id="u-1")
    claimed = queue.claim("w")
    assert claimed.id == first.id

    follow_up = schedule_continuation(queue, task_id="t-1", user_id="u-1")

    assert follow_up.id != first.id


def test_dedupe_refreshes_the_waiting_payload(queue) -> None:
    first = schedule_continuation(queue, task_id="t-1", user_id="u-1", step_index=0)
    again = schedule_continuation(queue, task_id="t-1", user_id="u-1", step_index=1)

    assert again.id == first.id
    assert [job.payload["step_index"] for job in queue.list_jobs(status="queued")] == [1]


def test_retry_is_superseded_by_a_newer_waiting_job(queue) -> None:
    first = schedule_continuation(queue, task_id="t-1", user_id="u-1")
    assert queue.claim("w").id == first.id
    newer = schedule_continuation(queue, task_id="t-1", user_id="u-1")

    queue.fail(first.id, "boom", retry_at=datetime.now(UTC))

    assert [job.id for job in queue.list_jobs(status="queued")] == [newer.id]
    retried = next(job for job in queue.list_jobs() if job.id == first.id)
    assert retried.status == "done"
    assert retried.last_error == "superseded after error: boom"


def test_claim_respects_run_after_and_order(queue) -> None:
    later = queue.enqueue("k", {"n": 1}, run_after=datetime.now(UTC) + timedelta(minutes=5))
    first = queue.enqueue("k", {"n": 2})
    second = queue.enqueue("k", {"n": 3})

    assert queue.claim("w").id == first.id
    assert queue.claim("w").id == second.id
    assert queue.claim("w") is None
    assert queue.list_jobs(status="queued")[0].id == later.id


def test_worker_completes_successful_jobs(queue) -> None:
    seen: list[dict] = []
    queue.enqueue("echo", {"value": 1})
    worker = JobWorker(queue, {"echo": seen.append}, worker_id="w")

    assert worker.drain() == 1
    assert seen == [{"value": 1}]
    assert [job.status for job in queue.list_jobs()] == ["done"]


def test_worker_retries_then_marks_dead(queue) -> None:
    def always_fail(payload: dict) -> None:
        raise RuntimeError("downstream unavailable")

    job = queue.enqueue("flaky", {})
    worker = JobWorker(queue, {"flaky": always_fail}, worker_id="w", max_attempts=2)

    worker.run_once()
    retried = queue.list_jobs()[0]
    assert retried.status == "queued"
    assert retried.run_after > datetime.now(UTC)
    assert retried.last_error == "RuntimeError: downstream unavailable"

    queue._jobs[job.id].run_after = datetime.now(UTC)
    worker.run_once()
    dead = queue.list_jobs()[0]
    assert dead.status == "dead"
    assert dead.attempts == 2


def test_worker_marks_unknown_kinds_dead(queue) -> None:
    queue.enqueue("mystery", {})

    JobWorker(queue, {}, worker_id="w").run_once()

    job = queue.list_jobs()[0]
    assert job.status == "dead"
    assert "No handler for job kind mystery" in job.last_error


def test_retry_delay_is_capped(queue) -> None:
    worker = JobWorker(queue, {}, retry_base_s=5.0, retry_max_s=60.0)

    assert 4.0 <= worker.retry_delay_s(1) <= 6.0
    assert 16.0 <= worker.retry_delay_s(3) <= 24.0
    assert worker.retry_delay_s(20) <= 72.0


def test_runtime_requires_database_url_without_injected_backends(settings, monkeypatch) -> None:
    monkeypatch.delenv("ORCHESTRATOR_DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError, match="Missing database URL"):
        build_runtime(settings)


def test_event_to_done_task_through_the_worker(settings) -> None:
    storage = InMemoryStorage()
    queue = InMemoryJobQueue()
    gateway = ScriptedGateway()
    runtime = build_runtime(
        settings, storage=storage, queue=queue, gateway=gateway, embedder=FakeEmbedder()
    )
    user = storage.create_user("ada@example.com")
    session = storage.create_chat_session(user.id)
    storage.create_email(user.id, subject="Invoice", labels=["UNREAD"])
    gateway.queue(
        tool_reply(
            call(
                "create_task",
                task_instruction="Tell the user about unread emails",
                next_instruction="Fetch unread emails",
            )
        ),
        tool_reply(call("get_emails", unread_only=True)),
        tool_reply(
            call("create_assistant_message", message="One unread email: Invoice"),
            call("end_task", final_summary="Reported 1 unread email"),
        ),
    )
    enqueue_inbound_event(
        queue,
        InboundEventJob(text="any unread mail?", user_id=user.id, session_id=session.id),
    )

    processed = runtime.build_worker(worker_id="w").drain()

    assert processed == 3
    assert [job.kind for job in queue.list_jobs()] == [
        INBOUND_EVENT,
        TASK_CONTINUATION,
        TASK_CONTINUATION,
    ]
    assert all(job.status == "done" for job in queue.list_jobs())
    [task] = [task for task in storage._tasks.values()]
    assert task.is_done is True
    replies = storage.list_messages(session.id, limit=10, offset=0)
    assert [item.message for item in replies] == ["One unread email: Invoice"]
