"""User-visible message tools."""

from __future__ import annotations

from typing import Any

from assistant_orchestrator.tools.access import owned_session
from assistant_orchestrator.tools.registry import ToolContext
from assistant_orchestrator.tools.schemas import (
    CreateAssistantMessageInput,
    CreateSystemMessageInput,
)


def create_assistant_message(
    payload: CreateAssistantMessageInput, context: ToolContext
) -> dict[str, Any]:
    owned_session(context, payload.session_id)
    record = context.memory.create_message(
        user_id=context.user_id,
        session_id=payload.session_id,
        role="assistant",
        message=payload.message,
    )
    return {"message_id": record.id, "session_id": record.session_id}


def create_system_message(
    payload: CreateSystemMessageInput, context: ToolContext
) -> dict[str, Any]:
    if payload.session_id is not None:
        owned_session(context, payload.session_id)
    record = context.memory.create_message(
        user_id=context.user_id,
        session_id=payload.session_id,
        role="system",
        message=payload.message,
    )
    return {"message_id": record.id, "session_id": record.session_id}
