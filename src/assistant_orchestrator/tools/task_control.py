"""Task lifecycle tools: create, update, pause, and finish durable tasks."""

from __future__ import annotations

import logging
from typing import Any

from assistant_orchestrator.engine.context import TaskContext
from assistant_orchestrator.jobs.queue import schedule_continuation
from assistant_orchestrator.tools.access import current_task
from assistant_orchestrator.tools.registry import ToolContext
from assistant_orchestrator.tools.schemas import (
    CreateTaskInput,
    EndTaskInput,
    PauseTaskInput,
    UpdateTaskInput,
)

logger = logging.getLogger(__name__)


def create_task(payload: CreateTaskInput, context: ToolContext) -> dict[str, Any]:
    working_memory = TaskContext()
    working_memory.merge_notes(payload.context)
    if context.session_id and "session_id" not in working_memory.notes:
        working_memory.notes["session_id"] = context.session_id
    if context.task_id:
        working_memory.notes.setdefault("parent_task_id", context.task_id)

    task = context.memory.create_task(
        user_id=context.user_id,
        task_instruction=payload.task_instruction,
        current_summary=payload.current_summary,
        next_instruction=payload.next_instruction,
        context=working_memory.to_dict(),
    )

    scheduled = False
    if context.queue is not None:
        schedule_continuation(
            context.queue,
            task_id=task.id,
            user_id=task.user_id,
            step_index=working_memory.step_index,
        )
        scheduled = True
    logger.info(
        "event=task_created task_id=%s user_id=%s scheduled=%s", task.id, task.user_id, scheduled
    )
    return {"task_id": task.id, "scheduled": scheduled}


def update_task(payload: UpdateTaskInput, context: ToolContext) -> dict[str, Any]:
    task = current_task(context)
    working_memory = TaskContext.from_raw(task.context)
    working_memory.merge_notes(payload.context)
    updated = context.storage.update_task(
        task.id,
        current_summary=payload.current_summary,
        next_instruction=payload.next_instruction,
        context=working_memory.to_dict(),
    )
    return {
        "task_id": updated.id,
        "current_summary": updated.current_summary,
        "next_instruction": updated.next_instruction,
    }


def pause_task(payload: PauseTaskInput, context: ToolContext) -> dict[str, Any]:
    task = current_task(context)
    working_memory = TaskContext.from_raw(task.context)
    working_memory.notes["pause_reason"] = payload.reason
    context.storage.update_task(task.id, context=working_memory.to_dict(), status="paused")
    return {"task_id": task.id, "paused": True, "reason": payload.reason}


def end_task(payload: EndTaskInput, context: ToolContext) -> dict[str, Any]:
    task = current_task(context)
    working_memory = TaskContext.from_raw(task.context)
    working_memory.merge_notes(payload.context)
    context.storage.update_task(
        task.id,
        current_summary=payload.final_summary,
        next_instruction="",
        context=working_memory.to_dict(),
        mark_done=True,
    )
    return {"task_id": task.id, "is_done": True, "final_summary": payload.final_summary}
