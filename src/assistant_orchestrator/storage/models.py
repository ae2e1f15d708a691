"""Storage models shared by tools, engine, API, and persistence backends."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

TaskStatus = Literal["pending", "processing", "continued", "paused", "done", "error"]
MessageRole = Literal["user", "assistant", "system"]
EMBEDDED_ROLES: frozenset[str] = frozenset({"user", "assistant"})


class UserRecord(BaseModel):
    """Account profile plus connection permission flags."""

    id: str
    email: str
    name: str | None = None
    username: str | None = None
    picture: str | None = None
    verified: bool = False
    gmail_read: bool = False
    gmail_write: bool = False
    calendar_read: bool = False
    calendar_write: bool = False
    hubspot: bool = False
    created_at: datetime


class ChatSessionRecord(BaseModel):
    id: str
    user_id: str
    title: str | None = None
    is_archived: bool = False
    created_at: datetime


class TaskRecord(BaseModel):
    """Persisted durable task."""

    id: str
    user_id: str
    task_instruction: str
    current_summary: str = ""
    next_instruction: str = ""
    context: dict[str, Any] = Field(default_factory=dict)
    is_done: bool = False
    status: TaskStatus = "pending"
    embedding: list[float] | None = None
    lease_owner: str | None = None
    lease_expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class InstructionRecord(BaseModel):
    """User-authored automation rule."""

    id: str
    user_id: str
    name: str
    description: str
    trigger_conditions: dict[str, Any] | str | None = None
    actions: dict[str, Any] | str | None = None
    ai_prompt: str = ""
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class MessageRecord(BaseModel):
    """Immutable chat message."""

    id: str
    user_id: str
    session_id: str | None = None
    role: MessageRole
    message: str
    embedding: list[float] | None = None
    inserted_at: datetime


class EmailRecord(BaseModel):
    """Synced mailbox message."""

    id: str
    user_id: str
    gmail_message_id: str
    subject: str = ""
    sender: str = ""
    recipients: str = ""
    content: str = ""
    thread_id: str = ""
    labels: list[str] = Field(default_factory=list)
    received_at: datetime

    @property
    def is_unread(self) -> bool:
        return "UNREAD" in self.labels


class TaskMatch(BaseModel):
    task: TaskRecord
    distance: float
    similarity: float


class MessageMatch(BaseModel):
    message: MessageRecord
    distance: float
    similarity: float
