from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from assistant_orchestrator.engine.context import TaskContext
from assistant_orchestrator.engine.continuation import ContinuationEngine, StepOutcome
from assistant_orchestrator.errors import (
    AccessDeniedError,
    InvalidTaskStateError,
    LLMGatewayError,
    NotFoundError,
    PersistenceError,
)
from assistant_orchestrator.jobs.queue import TASK_CONTINUATION, schedule_continuation

from fakes import call, text_reply, tool_reply


@pytest.fixture
def engine(storage, memory, gateway, queue, settings) -> ContinuationEngine:
    return ContinuationEngine(
        storage=storage,
        memory=memory,
        gateway=gateway,
        queue=queue,
        settings=settings,
        worker_id="test-worker",
    )


@pytest.fixture
def task(storage, user, session):
    return storage.create_task(
        user_id=user.id,
        task_instruction="Tell me about my unread emails",
        next_instruction="Fetch unread emails and summarise them",
        context=TaskContext(notes={"session_id": session.id}).to_dict(),
    )


def _queued_continuations(queue) -> list[str]:
    return [
        job.payload["task_id"]
        for job in queue.list_jobs(status="queued")
        if job.kind == TASK_CONTINUATION
    ]


def test_unread_email_task_finishes_with_one_reply(
    engine, gateway, storage, queue, user, session, task
) -> None:
    storage.create_email(
        user.id, subject="Invoice", sender="billing@vendor.com", labels=["UNREAD"]
    )
    storage.create_email(user.id, subject="Lunch?", sender="sam@example.com", labels=["UNREAD"])
    gateway.queue(
        tool_reply(
            call("get_emails", unread_only=True),
            call("create_assistant_message", message="You have 2 unread emails: Invoice, Lunch?"),
            call("end_task", final_summary="Reported 2 unread emails"),
        )
    )

    outcome = engine.run(task.id, user_id=user.id)

    assert outcome is StepOutcome.DONE
    stored = storage.get_task(task.id)
    assert stored.is_done is True
    assert stored.status == "done"
    assert stored.lease_owner is None
    replies = [
        item for item in storage.list_messages(session.id, limit=50, offset=0)
        if item.role == "assistant"
    ]
    assert [item.message for item in replies] == ["You have 2 unread emails: Invoice, Lunch?"]
    assert _queued_continuations(queue) == []

    working_memory = TaskContext.from_raw(stored.context)
    assert working_memory.step_index == 1
    assert [entry.tool_name for entry in working_memory.last_results()] == [
        "get_emails",
        "create_assistant_message",
        "end_task",
    ]
    assert working_memory.last_results()[0].result["unread_count"] == 2

    request = gateway.requests[0]
    assert request["tool_choice"] == "required"
    assert "end_task" in request["tools"]
    assert "Task Instruction: Tell me about my unread emails" in request["messages"][0]["content"]


def test_continuing_step_enqueues_exactly_one_follow_up(
    engine, gateway, storage, queue, user, task
) -> None:
    gateway.queue(
        tool_reply(
            call("get_emails", unread_only=True),
            call(
                "update_task",
                current_summary="No unread email yet",
                next_instruction="Tell the user the inbox is clear",
            ),
        )
    )

    outcome = engine.run(task.id)

    assert outcome is StepOutcome.CONTINUED
    assert _queued_continuations(queue) == [task.id]
    stored = storage.get_task(task.id)
    assert stored.status == "continued"
    assert stored.next_instruction == "Tell the user the inbox is clear"

    schedule_continuation(queue, task_id=task.id, user_id=user.id)
    assert _queued_continuations(queue) == [task.id]


def test_second_step_sees_previous_results(engine, gateway, storage, task) -> None:
    gateway.queue(
        tool_reply(call("get_emails")),
        tool_reply(call("end_task", final_summary="Inbox empty")),
    )

    assert engine.run(task.id) is StepOutcome.CONTINUED
    assert engine.run(task.id) is StepOutcome.DONE

    second_prompt = gateway.requests[1]["messages"][0]["content"]
    assert "Step: 2" in second_prompt
    assert '"tool_name": "get_emails"' in second_prompt


def test_done_task_is_a_no_op(engine, gateway, storage, queue, task) -> None:
    storage.update_task(task.id, mark_done=True)

    outcome = engine.run(task.id)

    assert outcome is StepOutcome.ALREADY_DONE
    assert gateway.requests == []
    assert _queued_continuations(queue) == []


def test_missing_task_is_reported(engine, gateway) -> None:
    assert engine.run("no-such-task") is StepOutcome.MISSING
    assert gateway.requests == []


def test_job_for_wrong_user_is_ignored(engine, gateway, other_user, task) -> None:
    assert engine.run(task.id, user_id=other_user.id) is StepOutcome.MISSING
    assert gateway.requests == []


def test_pause_stops_without_rescheduling(engine, gateway, storage, queue, task) -> None:
    gateway.queue(tool_reply(call("pause_task", reason="Waiting for Sam to reply")))

    outcome = engine.run(task.id)

    assert outcome is StepOutcome.PAUSED
    stored = storage.get_task(task.id)
    assert stored.status == "paused"
    assert stored.is_done is False
    assert TaskContext.from_raw(stored.context).notes["pause_reason"] == "Waiting for Sam to reply"
    assert _queued_continuations(queue) == []


def test_redelivered_job_does_not_undo_a_pause(
    engine, gateway, storage, queue, user, task
) -> None:
    job = {"task_id": task.id, "user_id": user.id, "step_index": 0}
    gateway.queue(
        tool_reply(call("pause_task", reason="Waiting for Sam to reply")),
        tool_reply(call("create_system_message", message="still going")),
    )

    assert engine.handle_job(job) is StepOutcome.PAUSED
    assert engine.handle_job(job) is StepOutcome.SKIPPED
    assert engine.run(task.id) is StepOutcome.SKIPPED

    assert len(gateway.requests) == 1
    assert storage.get_task(task.id).status == "paused"
    assert _queued_continuations(queue) == []


def test_stale_job_after_a_committed_step_is_skipped(
    engine, gateway, storage, queue, user, task
) -> None:
    gateway.queue(
        tool_reply(call("get_emails")),
        tool_reply(call("end_task", final_summary="Inbox empty")),
    )
    first = {"task_id": task.id, "user_id": user.id, "step_index": 0}

    assert engine.handle_job(first) is StepOutcome.CONTINUED
    [follow_up] = [
        job for job in queue.list_jobs(status="queued") if job.kind == TASK_CONTINUATION
    ]
    assert follow_up.payload["step_index"] == 1

    assert engine.handle_job(first) is StepOutcome.SKIPPED
    assert len(gateway.requests) == 1
    assert engine.handle_job(follow_up.payload) is StepOutcome.DONE


def test_failed_finishing_tool_does_not_halt(engine, gateway, storage, queue, task) -> None:
    gateway.queue(tool_reply(call("end_task")))

    outcome = engine.run(task.id)

    assert outcome is StepOutcome.CONTINUED
    stored = storage.get_task(task.id)
    assert stored.is_done is False
    entry = TaskContext.from_raw(stored.context).last_results()[0]
    assert entry.status == "error"
    assert entry.reason.startswith("Invalid arguments for end_task")
    assert _queued_continuations(queue) == [task.id]


def test_tool_errors_do_not_block_later_calls(engine, gateway, storage, session, task) -> None:
    gateway.queue(
        tool_reply(
            call("get_chat_messages", session_id="someone-elses-session"),
            call("create_assistant_message", message="Still working on it"),
        )
    )

    engine.run(task.id)

    results = TaskContext.from_raw(storage.get_task(task.id).context).last_results()
    assert [(entry.tool_name, entry.status) for entry in results] == [
        ("get_chat_messages", "error"),
        ("create_assistant_message", "ok"),
    ]
    assert [item.message for item in storage.list_messages(session.id, limit=10, offset=0)] == [
        "Still working on it"
    ]


def test_plain_text_reply_pauses_the_task(engine, gateway, storage, queue, task) -> None:
    gateway.queue(text_reply("I think the inbox is empty."))

    outcome = engine.run(task.id)

    assert outcome is StepOutcome.PAUSED
    stored = storage.get_task(task.id)
    assert stored.status == "paused"
    entry = TaskContext.from_raw(stored.context).last_results()[0]
    assert entry.tool_name == "reply"
    assert "I think the inbox is empty." in entry.reason
    assert _queued_continuations(queue) == []


def test_llm_failure_marks_error_and_releases_lease(engine, gateway, storage, queue, task):
    gateway.queue(LLMGatewayError("upstream 503"))

    with pytest.raises(LLMGatewayError):
        engine.run(task.id)

    stored = storage.get_task(task.id)
    assert stored.status == "error"
    assert stored.lease_owner is None
    assert _queued_continuations(queue) == []


def test_missing_gateway_raises(storage, memory, queue, settings, task) -> None:
    engine = ContinuationEngine(
        storage=storage, memory=memory, gateway=None, queue=queue, settings=settings
    )

    with pytest.raises(LLMGatewayError, match="No LLM gateway configured"):
        engine.run(task.id)
    assert storage.get_task(task.id).status == "error"


def test_failed_commit_marks_error_and_allows_resume(
    engine, gateway, storage, user, task, monkeypatch
) -> None:
    original_update = storage.update_task

    def failing_update(task_id, **fields):
        if fields.get("status") == "continued":
            raise PersistenceError("database went away")
        return original_update(task_id, **fields)

    monkeypatch.setattr(storage, "update_task", failing_update)
    gateway.queue(tool_reply(call("get_emails")))

    with pytest.raises(PersistenceError):
        engine.run(task.id)

    stored = storage.get_task(task.id)
    assert stored.status == "error"
    assert stored.lease_owner is None
    assert engine.resume_task(task.id, user_id=user.id).status == "pending"


def test_resume_refuses_while_a_step_holds_the_lease(engine, storage, user, task) -> None:
    storage.update_task(task.id, status="processing")
    assert storage.acquire_task_lease(task.id, "other-worker", ttl_s=60)

    with pytest.raises(InvalidTaskStateError, match="currently processing"):
        engine.resume_task(task.id, user_id=user.id)


def test_lost_lease_stops_the_step_without_committing(
    engine, gateway, storage, queue, session, task, monkeypatch
) -> None:
    original_acquire = storage.acquire_task_lease
    owners: list[str] = []

    def acquire(task_id, owner, ttl_s):
        owners.append(owner)
        # Initial claim, renewal before the first call, then taken over.
        if len(owners) == 3:
            return False
        return original_acquire(task_id, owner, ttl_s)

    monkeypatch.setattr(storage, "acquire_task_lease", acquire)
    gateway.queue(
        tool_reply(
            call("create_assistant_message", message="First"),
            call("create_assistant_message", message="Second"),
        )
    )

    assert engine.run(task.id) is StepOutcome.SKIPPED

    assert len(set(owners)) == 1
    messages = storage.list_messages(session.id, limit=10, offset=0)
    assert [item.message for item in messages] == ["First"]
    assert TaskContext.from_raw(storage.get_task(task.id).context).step_index == 0
    assert _queued_continuations(queue) == []


def test_held_lease_skips_the_step(engine, gateway, storage, task) -> None:
    assert storage.acquire_task_lease(task.id, "other-worker", ttl_s=60)

    assert engine.run(task.id) is StepOutcome.SKIPPED
    assert gateway.requests == []


def test_expired_lease_can_be_taken_over(engine, gateway, storage, task) -> None:
    assert storage.acquire_task_lease(task.id, "crashed-worker", ttl_s=60)
    storage._tasks[task.id].lease_expires_at = datetime.now(UTC) - timedelta(seconds=1)
    gateway.queue(tool_reply(call("end_task", final_summary="done")))

    assert engine.run(task.id) is StepOutcome.DONE


def test_step_limit_pauses_and_notifies(engine, gateway, storage, queue, session, task, settings):
    working_memory = TaskContext(
        step_index=settings.max_task_steps, notes={"session_id": session.id}
    )
    storage.update_task(task.id, context=working_memory.to_dict())

    outcome = engine.run(task.id)

    assert outcome is StepOutcome.PAUSED
    assert gateway.requests == []
    stored = storage.get_task(task.id)
    assert stored.status == "paused"
    assert "Paused after 5 steps" in TaskContext.from_raw(stored.context).notes["pause_reason"]
    notices = storage.list_messages(session.id, limit=10, offset=0)
    assert [item.role for item in notices] == ["system"]
    assert _queued_continuations(queue) == []


def test_resume_resets_budget_and_schedules(engine, gateway, storage, queue, user, task, settings):
    working_memory = TaskContext(step_index=settings.max_task_steps)
    working_memory.notes["pause_reason"] = "step limit"
    storage.update_task(task.id, context=working_memory.to_dict(), status="paused")

    resumed = engine.resume_task(task.id, user_id=user.id, next_instruction="Try once more")

    assert resumed.status == "pending"
    assert resumed.next_instruction == "Try once more"
    restored = TaskContext.from_raw(resumed.context)
    assert restored.budget_start == settings.max_task_steps
    assert "pause_reason" not in restored.notes
    assert _queued_continuations(queue) == [task.id]

    gateway.queue(tool_reply(call("end_task", final_summary="Done after resume")))
    assert engine.run(task.id) is StepOutcome.DONE


def test_resume_rejects_done_foreign_and_missing_tasks(engine, storage, user, other_user, task):
    with pytest.raises(NotFoundError):
        engine.resume_task("nope", user_id=user.id)
    with pytest.raises(AccessDeniedError):
        engine.resume_task(task.id, user_id=other_user.id)

    storage.update_task(task.id, mark_done=True)
    with pytest.raises(InvalidTaskStateError):
        engine.resume_task(task.id, user_id=user.id)


def test_done_is_monotonic(storage, task) -> None:
    storage.update_task(task.id, mark_done=True)

    reopened = storage.update_task(task.id, status="processing")

    assert reopened.is_done is True
    assert reopened.status == "done"


def test_handle_job_validates_payload(engine, gateway, user, task) -> None:
    gateway.queue(tool_reply(call("end_task", final_summary="ok")))

    assert engine.handle_job({"task_id": task.id, "user_id": user.id}) is StepOutcome.DONE
    with pytest.raises(ValidationError):
        engine.handle_job({"task_id": task.id})
