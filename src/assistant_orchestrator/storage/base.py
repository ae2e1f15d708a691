"""Storage interface for tasks, instructions, chat messages, and synced records."""

from __future__ import annotations

from typing import Any, Protocol

from assistant_orchestrator.storage.models import (
    ChatSessionRecord,
    EmailRecord,
    InstructionRecord,
    MessageMatch,
    MessageRecord,
    TaskMatch,
    TaskRecord,
    TaskStatus,
    UserRecord,
)

INSTRUCTION_FIELDS = (
    "name",
    "description",
    "trigger_conditions",
    "actions",
    "ai_prompt",
    "is_active",
)


class AssistantStorage(Protocol):
    def migrate(self) -> None: ...

    def create_user(self, email: str, **profile: Any) -> UserRecord: ...

    def get_user(self, user_id: str) -> UserRecord | None: ...

    def create_chat_session(self, user_id: str, title: str | None = None) -> ChatSessionRecord: ...

    def get_chat_session(self, session_id: str) -> ChatSessionRecord | None: ...

    def create_task(
        self,
        *,
        user_id: str,
        task_instruction: str,
        current_summary: str = "",
        next_instruction: str = "",
        context: dict[str, Any] | None = None,
        embedding: list[float] | None = None,
    ) -> TaskRecord: ...

    def get_task(self, task_id: str) -> TaskRecord | None: ...

    def list_open_tasks(self, user_id: str) -> list[TaskRecord]: ...

    def update_task(
        self,
        task_id: str,
        *,
        current_summary: str | None = None,
        next_instruction: str | None = None,
        context: dict[str, Any] | None = None,
        status: TaskStatus | None = None,
        embedding: list[float] | None = None,
        mark_done: bool = False,
    ) -> TaskRecord: ...

    def acquire_task_lease(self, task_id: str, owner: str, ttl_s: float) -> bool: ...

    def release_task_lease(self, task_id: str, owner: str) -> None: ...

    def search_tasks(
        self,
        user_id: str,
        query_embedding: list[float],
        *,
        max_distance: float,
        limit: int,
        include_completed: bool = True,
    ) -> list[TaskMatch]: ...

    def list_tasks_missing_embedding(self, limit: int) -> list[TaskRecord]: ...

    def create_instruction(self, user_id: str, **fields: Any) -> InstructionRecord: ...

    def get_instruction(self, instruction_id: str) -> InstructionRecord | None: ...

    def list_instructions(
        self, user_id: str, *, active_only: bool = False
    ) -> list[InstructionRecord]: ...

    def update_instruction(self, instruction_id: str, **fields: Any) -> InstructionRecord: ...

    def delete_instruction(self, instruction_id: str) -> bool: ...

    def create_message(
        self,
        *,
        user_id: str,
        session_id: str | None,
        role: str,
        message: str,
        embedding: list[float] | None = None,
    ) -> MessageRecord: ...

    def list_messages(self, session_id: str, *, limit: int, offset: int) -> list[MessageRecord]: ...

    def search_messages(
        self,
        user_id: str,
        query_embedding: list[float],
        *,
        max_distance: float,
        limit: int,
        role: str | None = None,
        session_id: str | None = None,
    ) -> list[MessageMatch]: ...

    def list_messages_missing_embedding(
        self, limit: int, roles: tuple[str, ...]
    ) -> list[MessageRecord]: ...

    def set_message_embedding(self, message_id: str, embedding: list[float]) -> None: ...

    def create_email(self, user_id: str, **fields: Any) -> EmailRecord: ...

    def list_emails(
        self,
        user_id: str,
        *,
        limit: int,
        offset: int = 0,
        unread_only: bool = False,
        sender: str | None = None,
    ) -> tuple[list[EmailRecord], int]: ...

    def count_unread_emails(self, user_id: str) -> int: ...
