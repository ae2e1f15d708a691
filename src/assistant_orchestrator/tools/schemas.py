"""Strict Pydantic schemas for tool arguments and results."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class StrictModel(BaseModel):
    """Base model for strict schema validation."""

    model_config = ConfigDict(extra="forbid")


class ToolResult(BaseModel):
    """Outcome of one tool call; never raised, always returned."""

    tool: str
    status: Literal["ok", "error"]
    result: Any = None
    reason: str | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "ok"


# Task control


class CreateTaskInput(StrictModel):
    task_instruction: str = Field(min_length=1, description="The finished goal, in one sentence.")
    next_instruction: str = Field(min_length=1, description="The first concrete step to run.")
    current_summary: str = ""
    context: dict[str, Any] | None = Field(
        default=None, description="Optional notes kept with the task."
    )


class UpdateTaskInput(StrictModel):
    current_summary: str = Field(description="Progress so far.")
    next_instruction: str = Field(description="What the next step should do.")
    context: dict[str, Any] | None = Field(
        default=None, description="Notes merged into the task's working memory."
    )


class PauseTaskInput(StrictModel):
    reason: str = Field(min_length=1, description="What the task is waiting for.")


class EndTaskInput(StrictModel):
    final_summary: str = Field(min_length=1, description="What was accomplished.")
    context: dict[str, Any] | None = None


# Communication


class CreateAssistantMessageInput(StrictModel):
    session_id: str = Field(min_length=1, description="Chat session to post into.")
    message: str = Field(min_length=1)


class CreateSystemMessageInput(StrictModel):
    message: str = Field(min_length=1)
    session_id: str | None = None


# Instructions

RuleBody = dict[str, Any] | str | None


class CreateInstructionInput(StrictModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    trigger_conditions: RuleBody = Field(default=None, description="When the rule applies.")
    actions: RuleBody = Field(default=None, description="What the rule does.")
    ai_prompt: str = ""
    is_active: bool = True


class UpdateInstructionInput(StrictModel):
    instruction_id: str = Field(min_length=1)
    name: str | None = None
    description: str | None = None
    trigger_conditions: RuleBody = None
    actions: RuleBody = None
    ai_prompt: str | None = None
    is_active: bool | None = None


class DeleteInstructionInput(StrictModel):
    instruction_id: str = Field(min_length=1)


class ListInstructionsInput(StrictModel):
    active_only: bool = False


# Records


class GetChatMessagesInput(StrictModel):
    session_id: str = Field(min_length=1)
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


class GetUserInfoInput(StrictModel):
    user_id: str = Field(min_length=1)


class GetEmailsInput(StrictModel):
    limit: int = Field(default=10, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    unread_only: bool = False
    sender: str | None = Field(default=None, description="Substring match on the sender.")


# Similarity search


class SearchTasksInput(StrictModel):
    query: str = Field(min_length=1)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    limit: int | None = Field(default=None, ge=1, le=100)
    include_completed: bool = True


class SearchChatMessagesInput(StrictModel):
    query: str = Field(min_length=1)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    limit: int | None = Field(default=None, ge=1, le=100)
    role_filter: Literal["user", "assistant", "system"] | None = None
    session_id: str | None = None


class FindRelevantContextInput(StrictModel):
    query: str = Field(min_length=1)
    task_limit: int = Field(default=5, ge=0, le=50)
    message_limit: int = Field(default=5, ge=0, le=50)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
