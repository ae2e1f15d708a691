"""Ownership checks shared by tool handlers."""

from __future__ import annotations

from assistant_orchestrator.errors import AccessDeniedError, NotFoundError, ToolValidationError
from assistant_orchestrator.storage.models import ChatSessionRecord, InstructionRecord, TaskRecord
from assistant_orchestrator.tools.registry import ToolContext


def owned_session(context: ToolContext, session_id: str) -> ChatSessionRecord:
    session = context.storage.get_chat_session(session_id)
    if session is None:
        raise NotFoundError(f"Chat session {session_id} not found")
    if session.user_id != context.user_id:
        raise AccessDeniedError()
    return session


def owned_instruction(context: ToolContext, instruction_id: str) -> InstructionRecord:
    instruction = context.storage.get_instruction(instruction_id)
    if instruction is None:
        raise NotFoundError(f"Instruction {instruction_id} not found")
    if instruction.user_id != context.user_id:
        raise AccessDeniedError()
    return instruction


def current_task(context: ToolContext) -> TaskRecord:
    if context.task_id is None:
        raise ToolValidationError("This tool can only be used while a task is running")
    task = context.storage.get_task(context.task_id)
    if task is None:
        raise NotFoundError(f"Task {context.task_id} not found")
    if task.user_id != context.user_id:
        raise AccessDeniedError()
    return task
