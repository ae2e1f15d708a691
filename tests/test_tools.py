from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from assistant_orchestrator.engine.context import TaskContext
from assistant_orchestrator.jobs.queue import TASK_CONTINUATION
from assistant_orchestrator.tools import ToolExecutor, build_registry


@pytest.fixture
def executor() -> ToolExecutor:
    return ToolExecutor(build_registry())


def test_instruction_lifecycle(executor, tool_context, storage, user) -> None:
    created = executor.execute(
        "create_instruction",
        {
            "name": "Newsletter filter",
            "description": "Archive newsletters",
            "trigger_conditions": {"sender_contains": "newsletter"},
            "actions": "archive",
        },
        tool_context,
    )
    assert created.ok
    instruction_id = created.result["id"]
    assert "user_id" not in created.result

    updated = executor.execute(
        "update_instruction",
        {"instruction_id": instruction_id, "is_active": False},
        tool_context,
    )
    assert updated.ok
    assert updated.result["is_active"] is False
    assert updated.result["name"] == "Newsletter filter"

    active = executor.execute("list_instructions", {"active_only": True}, tool_context)
    every = executor.execute("list_instructions", {}, tool_context)
    assert active.result["instructions"] == []
    assert [item["id"] for item in every.result["instructions"]] == [instruction_id]

    deleted = executor.execute(
        "delete_instruction", {"instruction_id": instruction_id}, tool_context
    )
    assert deleted.result == {"instruction_id": instruction_id, "deleted": True}
    assert storage.list_instructions(user.id) == []


def test_instructions_of_other_users_are_off_limits(executor, tool_context, storage, other_user):
    foreign = storage.create_instruction(other_user.id, name="Theirs", description="Not yours")

    update = executor.execute(
        "update_instruction", {"instruction_id": foreign.id, "name": "Mine now"}, tool_context
    )
    delete = executor.execute("delete_instruction", {"instruction_id": foreign.id}, tool_context)

    assert update.reason == "access denied"
    assert delete.reason == "access denied"
    assert storage.get_instruction(foreign.id).name == "Theirs"


def test_missing_instruction_is_not_found(executor, tool_context) -> None:
    result = executor.execute("delete_instruction", {"instruction_id": "nope"}, tool_context)

    assert result.status == "error"
    assert "not found" in result.reason


def test_get_chat_messages_pages_oldest_first(executor, tool_context, storage, user, session):
    for index in range(3):
        storage.create_message(
            user_id=user.id, session_id=session.id, role="user", message=f"m{index}"
        )

    result = executor.execute("get_chat_messages", {"limit": 2, "offset": 1}, tool_context)

    assert result.ok
    assert result.result["session_id"] == session.id
    assert [item["message"] for item in result.result["messages"]] == ["m1", "m2"]


def test_get_user_info_only_reads_the_caller(executor, tool_context, user, other_user) -> None:
    own = executor.execute("get_user_info", {}, tool_context)
    foreign = executor.execute("get_user_info", {"user_id": other_user.id}, tool_context)

    assert own.result["email"] == "ada@example.com"
    assert own.result["permissions"]["gmail_read"] is True
    assert own.result["permissions"]["calendar_write"] is False
    assert foreign.reason == "access denied"


def test_get_emails_filters_and_counts_unread(executor, tool_context, storage, user, other_user):
    now = datetime.now(UTC)
    storage.create_email(
        user.id,
        subject="Invoice",
        sender="billing@vendor.com",
        labels=["INBOX", "UNREAD"],
        received_at=now - timedelta(hours=2),
    )
    storage.create_email(
        user.id,
        subject="Lunch?",
        sender="sam@example.com",
        labels=["INBOX", "UNREAD"],
        content="x" * 5000,
        received_at=now - timedelta(hours=1),
    )
    storage.create_email(
        user.id, subject="Read already", sender="sam@example.com", labels=["INBOX"]
    )
    storage.create_email(other_user.id, subject="Not yours", labels=["UNREAD"])

    unread = executor.execute("get_emails", {"unread_only": True}, tool_context)
    from_sam = executor.execute("get_emails", {"sender": "SAM@"}, tool_context)

    assert [item["subject"] for item in unread.result["emails"]] == ["Lunch?", "Invoice"]
    assert unread.result["total"] == 2
    assert unread.result["unread_count"] == 2
    assert len(unread.result["emails"][0]["content"]) == 2000
    assert [item["subject"] for item in from_sam.result["emails"]] == ["Read already", "Lunch?"]


def test_create_task_records_session_and_schedules_first_step(
    executor, tool_context, storage, queue, session
) -> None:
    result = executor.execute(
        "create_task",
        {
            "task_instruction": "Tell me about my unread emails",
            "next_instruction": "Fetch unread emails",
            "context": {"priority": "high"},
        },
        tool_context,
    )

    assert result.ok
    assert result.result["scheduled"] is True
    task = storage.get_task(result.result["task_id"])
    assert task.status == "pending"
    assert task.embedding is not None
    notes = TaskContext.from_raw(task.context).notes
    assert notes == {"priority": "high", "session_id": session.id}

    jobs = queue.list_jobs(status="queued")
    assert [(job.kind, job.payload["task_id"]) for job in jobs] == [(TASK_CONTINUATION, task.id)]


def test_task_control_tools_require_a_running_task(executor, tool_context) -> None:
    result = executor.execute("pause_task", {"reason": "waiting"}, tool_context)

    assert result.status == "error"
    assert "only be used while a task is running" in result.reason


def test_update_and_pause_task_write_working_memory(executor, tool_context, storage, user):
    task = storage.create_task(user_id=user.id, task_instruction="Plan offsite")
    tool_context.task_id = task.id

    updated = executor.execute(
        "update_task",
        {
            "current_summary": "Venue shortlisted",
            "next_instruction": "Email the venue",
            "context": {"venue": "Lakehouse"},
        },
        tool_context,
    )
    paused = executor.execute("pause_task", {"reason": "Waiting for venue reply"}, tool_context)

    assert updated.ok and paused.ok
    stored = storage.get_task(task.id)
    assert stored.current_summary == "Venue shortlisted"
    assert stored.next_instruction == "Email the venue"
    assert stored.status == "paused"
    assert TaskContext.from_raw(stored.context).notes == {
        "venue": "Lakehouse",
        "pause_reason": "Waiting for venue reply",
    }


def test_end_task_marks_done_and_clears_next_instruction(executor, tool_context, storage, user):
    task = storage.create_task(
        user_id=user.id, task_instruction="Plan offsite", next_instruction="Book venue"
    )
    tool_context.task_id = task.id

    result = executor.execute("complete_task", {"final_summary": "Venue booked"}, tool_context)

    assert result.ok
    stored = storage.get_task(task.id)
    assert stored.is_done is True
    assert stored.status == "done"
    assert stored.current_summary == "Venue booked"
    assert stored.next_instruction == ""


def test_task_tools_cannot_touch_another_users_task(executor, tool_context, storage, other_user):
    foreign = storage.create_task(user_id=other_user.id, task_instruction="Theirs")
    tool_context.task_id = foreign.id

    result = executor.execute("end_task", {"final_summary": "hijacked"}, tool_context)

    assert result.reason == "access denied"
    assert storage.get_task(foreign.id).is_done is False


def test_system_message_without_session(executor, tool_context, storage, user) -> None:
    result = executor.execute("create_system_message", {"message": "Sync finished"}, tool_context)

    assert result.ok
    assert result.result["session_id"] is None


def test_search_tools_return_plain_views(executor, tool_context, memory, user, session) -> None:
    task = memory.create_task(user_id=user.id, task_instruction="renew passport")
    memory.create_message(
        user_id=user.id, session_id=session.id, role="user", message="renew passport"
    )

    tasks = executor.execute("search_tasks", {"query": "renew passport"}, tool_context)
    messages = executor.execute(
        "search_chat_messages",
        {"query": "renew passport", "role_filter": "user"},
        tool_context,
    )
    combined = executor.execute("find_relevant_context", {"query": "renew passport"}, tool_context)

    assert tasks.result["tasks"][0]["task_id"] == task.id
    assert tasks.result["tasks"][0]["similarity"] == pytest.approx(1.0)
    assert messages.result["messages"][0]["role"] == "user"
    assert len(combined.result["tasks"]) == 1
    assert len(combined.result["messages"]) == 1
