"""Automation rule tools."""

from __future__ import annotations

from typing import Any

from assistant_orchestrator.storage.models import InstructionRecord
from assistant_orchestrator.tools.access import owned_instruction
from assistant_orchestrator.tools.registry import ToolContext
from assistant_orchestrator.tools.schemas import (
    CreateInstructionInput,
    DeleteInstructionInput,
    ListInstructionsInput,
    UpdateInstructionInput,
)


def create_instruction(payload: CreateInstructionInput, context: ToolContext) -> dict[str, Any]:
    record = context.storage.create_instruction(context.user_id, **payload.model_dump())
    return _instruction_view(record)


def update_instruction(payload: UpdateInstructionInput, context: ToolContext) -> dict[str, Any]:
    owned_instruction(context, payload.instruction_id)
    changes = payload.model_dump(exclude={"instruction_id"}, exclude_none=True)
    record = context.storage.update_instruction(payload.instruction_id, **changes)
    return _instruction_view(record)


def delete_instruction(payload: DeleteInstructionInput, context: ToolContext) -> dict[str, Any]:
    owned_instruction(context, payload.instruction_id)
    deleted = context.storage.delete_instruction(payload.instruction_id)
    return {"instruction_id": payload.instruction_id, "deleted": deleted}


def list_instructions(payload: ListInstructionsInput, context: ToolContext) -> dict[str, Any]:
    records = context.storage.list_instructions(context.user_id, active_only=payload.active_only)
    return {"instructions": [_instruction_view(record) for record in records]}


def _instruction_view(record: InstructionRecord) -> dict[str, Any]:
    return record.model_dump(mode="json", exclude={"user_id"})
