from __future__ import annotations

import json

import pytest

from assistant_orchestrator.config.prompts import get_prompt, list_prompts
from assistant_orchestrator.engine.context import CONTEXT_VERSION, TaskContext
from assistant_orchestrator.tools.schemas import ToolResult


def test_empty_context_starts_fresh() -> None:
    working_memory = TaskContext.from_raw(None)

    assert working_memory.step_index == 0
    assert working_memory.log == []
    assert working_memory.to_dict()["version"] == CONTEXT_VERSION


def test_legacy_context_is_upgraded() -> None:
    raw = {
        "last_tool_results": json.dumps(
            [
                {"tool": "get_emails", "status": "ok", "result": {"total": 2}},
                {"tool": "create_assistant_message", "status": "failed", "error": "boom"},
            ]
        ),
        "session_id": "s-1",
        "priority": "high",
    }

    working_memory = TaskContext.from_raw(raw)

    assert [entry.tool_name for entry in working_memory.log] == [
        "get_emails",
        "create_assistant_message",
    ]
    assert working_memory.log[1].status == "error"
    assert working_memory.log[1].reason == "boom"
    assert working_memory.notes == {"session_id": "s-1", "priority": "high"}


def test_record_step_splits_last_and_earlier_results() -> None:
    working_memory = TaskContext()
    working_memory.record_step(
        [ToolResult(tool="get_emails", status="ok", result={"total": 1})], limit=50
    )
    step = working_memory.record_step(
        [
            ToolResult(tool="create_assistant_message", status="ok", result={"message_id": "m"}),
            ToolResult(tool="update_task", status="error", reason="bad"),
        ],
        limit=50,
    )

    assert step == 2
    assert [entry.tool_name for entry in working_memory.last_results()] == [
        "create_assistant_message",
        "update_task",
    ]
    assert working_memory.last_results()[1].result is None
    assert [entry.tool_name for entry in working_memory.earlier_results()] == ["get_emails"]


def test_record_step_trims_oldest_entries() -> None:
    working_memory = TaskContext()
    for index in range(4):
        working_memory.record_step(
            [ToolResult(tool=f"tool_{index}", status="ok"), ToolResult(tool="x", status="ok")],
            limit=3,
        )

    assert len(working_memory.log) == 3
    assert working_memory.log[0].tool_name == "x"
    assert working_memory.log[-1].step_index == 4


def test_round_trip_through_dict() -> None:
    working_memory = TaskContext(notes={"session_id": "s-1"}, budget_start=2, step_index=3)

    restored = TaskContext.from_raw(working_memory.to_dict())

    assert restored == working_memory


def test_prompt_catalogue_lookup() -> None:
    assert list_prompts() == ["continuation/v1", "dispatcher/v1", "dispatcher/v2"]
    assert "create_task ONLY" in get_prompt("dispatcher", "v2").system
    with pytest.raises(KeyError, match="Unknown prompt revision"):
        get_prompt("dispatcher", "v9")


def test_continuation_prompt_renders_all_slots() -> None:
    prompt = get_prompt("continuation", "v1")

    rendered = prompt.render(
        task_id="t-1",
        task_instruction="Summarise unread email",
        current_summary="(none yet)",
        next_instruction="Fetch unread emails",
        step_index=1,
        notes="{}",
        last_results="[]",
        earlier_results="[]",
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-01T00:00:00+00:00",
        now="2026-01-01T00:05:00+00:00",
    )

    assert "Task ID: t-1" in rendered
    assert "Next Instruction: Fetch unread emails" in rendered
    assert "- end_task" in prompt.render_system(tool_overview="- end_task: finish")
