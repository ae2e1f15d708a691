"""Similarity search tools backed by ``MemoryService``."""

from __future__ import annotations

from typing import Any

from assistant_orchestrator.storage.models import MessageMatch, TaskMatch
from assistant_orchestrator.tools.registry import ToolContext
from assistant_orchestrator.tools.schemas import (
    FindRelevantContextInput,
    SearchChatMessagesInput,
    SearchTasksInput,
)


def search_tasks(payload: SearchTasksInput, context: ToolContext) -> dict[str, Any]:
    matches = context.memory.search_tasks(
        context.user_id,
        payload.query,
        threshold=payload.threshold,
        limit=payload.limit,
        include_completed=payload.include_completed,
    )
    return {"query": payload.query, "tasks": [task_match_view(match) for match in matches]}


def search_chat_messages(
    payload: SearchChatMessagesInput, context: ToolContext
) -> dict[str, Any]:
    matches = context.memory.search_chat_messages(
        context.user_id,
        payload.query,
        threshold=payload.threshold,
        limit=payload.limit,
        role=payload.role_filter,
        session_id=payload.session_id,
    )
    return {
        "query": payload.query,
        "messages": [message_match_view(match) for match in matches],
    }


def find_relevant_context(
    payload: FindRelevantContextInput, context: ToolContext
) -> dict[str, Any]:
    found = context.memory.find_relevant_context(
        context.user_id,
        payload.query,
        task_limit=payload.task_limit,
        message_limit=payload.message_limit,
        threshold=payload.threshold,
    )
    return {
        "query": payload.query,
        "tasks": [task_match_view(match) for match in found.tasks],
        "messages": [message_match_view(match) for match in found.messages],
    }


def task_match_view(match: TaskMatch) -> dict[str, Any]:
    task = match.task
    return {
        "task_id": task.id,
        "task_instruction": task.task_instruction,
        "current_summary": task.current_summary,
        "is_done": task.is_done,
        "similarity": match.similarity,
    }


def message_match_view(match: MessageMatch) -> dict[str, Any]:
    message = match.message
    return {
        "message_id": message.id,
        "session_id": message.session_id,
        "role": message.role,
        "message": message.message,
        "inserted_at": message.inserted_at.isoformat(),
        "similarity": match.similarity,
    }
