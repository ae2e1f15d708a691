"""In-memory storage backend for tests and local runs."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from assistant_orchestrator.errors import NotFoundError
from assistant_orchestrator.memory.similarity import rank_by_distance, similarity_from_distance
from assistant_orchestrator.storage.base import INSTRUCTION_FIELDS
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


class InMemoryStorage:
    """Thread-safe dict-backed implementation of ``AssistantStorage``."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: dict[str, UserRecord] = {}
        self._sessions: dict[str, ChatSessionRecord] = {}
        self._tasks: dict[str, TaskRecord] = {}
        self._instructions: dict[str, InstructionRecord] = {}
        # Insertion order doubles as creation order for messages and emails.
        self._messages: dict[str, MessageRecord] = {}
        self._emails: dict[str, EmailRecord] = {}

    def migrate(self) -> None:
        return None

    def create_user(self, email: str, **profile: Any) -> UserRecord:
        record = UserRecord(
            id=str(profile.pop("id", None) or uuid4()),
            email=email,
            created_at=_now(),
            **profile,
        )
        with self._lock:
            self._users[record.id] = record
        return record.model_copy(deep=True)

    def get_user(self, user_id: str) -> UserRecord | None:
        with self._lock:
            record = self._users.get(user_id)
        return record.model_copy(deep=True) if record else None

    def create_chat_session(self, user_id: str, title: str | None = None) -> ChatSessionRecord:
        record = ChatSessionRecord(id=str(uuid4()), user_id=user_id, title=title, created_at=_now())
        with self._lock:
            self._sessions[record.id] = record
        return record.model_copy(deep=True)

    def get_chat_session(self, session_id: str) -> ChatSessionRecord | None:
        with self._lock:
            record = self._sessions.get(session_id)
        return record.model_copy(deep=True) if record else None

    def create_task(
        self,
        *,
        user_id: str,
        task_instruction: str,
        current_summary: str = "",
        next_instruction: str = "",
        context: dict[str, Any] | None = None,
        embedding: list[float] | None = None,
    ) -> TaskRecord:
        now = _now()
        record = TaskRecord(
            id=str(uuid4()),
            user_id=user_id,
            task_instruction=task_instruction,
            current_summary=current_summary,
            next_instruction=next_instruction,
            context=dict(context or {}),
            embedding=list(embedding) if embedding else None,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._tasks[record.id] = record
        return record.model_copy(deep=True)

    def get_task(self, task_id: str) -> TaskRecord | None:
        with self._lock:
            record = self._tasks.get(task_id)
        return record.model_copy(deep=True) if record else None

    def list_open_tasks(self, user_id: str) -> list[TaskRecord]:
        with self._lock:
            rows = [
                task.model_copy(deep=True)
                for task in self._tasks.values()
                if task.user_id == user_id and not task.is_done
            ]
        return sorted(rows, key=lambda task: task.created_at)

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
    ) -> TaskRecord:
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise NotFoundError(f"Task {task_id} does not exist")
            updated = current.model_copy(deep=True)
            if current_summary is not None:
                updated.current_summary = current_summary
            if next_instruction is not None:
                updated.next_instruction = next_instruction
            if context is not None:
                updated.context = dict(context)
            if embedding is not None:
                updated.embedding = list(embedding)
            if mark_done:
                updated.is_done = True
            if status is not None:
                updated.status = status
            if updated.is_done:
                updated.status = "done"
            updated.updated_at = _now()
            self._tasks[task_id] = updated
        return updated.model_copy(deep=True)

    def acquire_task_lease(self, task_id: str, owner: str, ttl_s: float) -> bool:
        now = _now()
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise NotFoundError(f"Task {task_id} does not exist")
            held = (
                current.lease_owner is not None
                and current.lease_owner != owner
                and current.lease_expires_at is not None
                and current.lease_expires_at > now
            )
            if held:
                return False
            self._tasks[task_id] = current.model_copy(
                update={"lease_owner": owner, "lease_expires_at": now + timedelta(seconds=ttl_s)}
            )
        return True

    def release_task_lease(self, task_id: str, owner: str) -> None:
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None or current.lease_owner != owner:
                return
            self._tasks[task_id] = current.model_copy(
                update={"lease_owner": None, "lease_expires_at": None}
            )

    def search_tasks(
        self,
        user_id: str,
        query_embedding: list[float],
        *,
        max_distance: float,
        limit: int,
        include_completed: bool = True,
    ) -> list[TaskMatch]:
        with self._lock:
            candidates = [
                task.model_copy(deep=True)
                for task in self._tasks.values()
                if task.user_id == user_id and (include_completed or not task.is_done)
            ]
        ranked = rank_by_distance(
            candidates,
            query_embedding,
            vector_of=lambda task: task.embedding,
            max_distance=max_distance,
            limit=limit,
        )
        return [
            TaskMatch(task=task, distance=distance, similarity=similarity_from_distance(distance))
            for task, distance in ranked
        ]

    def list_tasks_missing_embedding(self, limit: int) -> list[TaskRecord]:
        with self._lock:
            rows = [
                task.model_copy(deep=True)
                for task in self._tasks.values()
                if task.embedding is None and task.task_instruction.strip()
            ]
        rows.sort(key=lambda task: task.created_at, reverse=True)
        return rows[:limit]

    def create_instruction(self, user_id: str, **fields: Any) -> InstructionRecord:
        now = _now()
        values = {key: fields[key] for key in INSTRUCTION_FIELDS if fields.get(key) is not None}
        record = InstructionRecord(
            id=str(uuid4()),
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **values,
        )
        with self._lock:
            self._instructions[record.id] = record
        return record.model_copy(deep=True)

    def get_instruction(self, instruction_id: str) -> InstructionRecord | None:
        with self._lock:
            record = self._instructions.get(instruction_id)
        return record.model_copy(deep=True) if record else None

    def list_instructions(
        self, user_id: str, *, active_only: bool = False
    ) -> list[InstructionRecord]:
        with self._lock:
            rows = [
                item.model_copy(deep=True)
                for item in self._instructions.values()
                if item.user_id == user_id and (item.is_active or not active_only)
            ]
        return sorted(rows, key=lambda item: item.created_at)

    def update_instruction(self, instruction_id: str, **fields: Any) -> InstructionRecord:
        with self._lock:
            current = self._instructions.get(instruction_id)
            if current is None:
                raise NotFoundError(f"Instruction {instruction_id} does not exist")
            changes = {key: fields[key] for key in INSTRUCTION_FIELDS if key in fields}
            changes["updated_at"] = _now()
            updated = current.model_copy(update=changes, deep=True)
            self._instructions[instruction_id] = updated
        return updated.model_copy(deep=True)

    def delete_instruction(self, instruction_id: str) -> bool:
        with self._lock:
            return self._instructions.pop(instruction_id, None) is not None

    def create_message(
        self,
        *,
        user_id: str,
        session_id: str | None,
        role: str,
        message: str,
        embedding: list[float] | None = None,
    ) -> MessageRecord:
        record = MessageRecord(
            id=str(uuid4()),
            user_id=user_id,
            session_id=session_id,
            role=role,
            message=message,
            embedding=list(embedding) if embedding else None,
            inserted_at=_now(),
        )
        with self._lock:
            self._messages[record.id] = record
        return record.model_copy(deep=True)

    def list_messages(self, session_id: str, *, limit: int, offset: int) -> list[MessageRecord]:
        with self._lock:
            rows = [
                item.model_copy(deep=True)
                for item in self._messages.values()
                if item.session_id == session_id
            ]
        return rows[offset : offset + limit]

    def search_messages(
        self,
        user_id: str,
        query_embedding: list[float],
        *,
        max_distance: float,
        limit: int,
        role: str | None = None,
        session_id: str | None = None,
    ) -> list[MessageMatch]:
        with self._lock:
            candidates = [
                item.model_copy(deep=True)
                for item in self._messages.values()
                if item.user_id == user_id
                and (role is None or item.role == role)
                and (session_id is None or item.session_id == session_id)
            ]
        ranked = rank_by_distance(
            candidates,
            query_embedding,
            vector_of=lambda item: item.embedding,
            max_distance=max_distance,
            limit=limit,
        )
        return [
            MessageMatch(
                message=item, distance=distance, similarity=similarity_from_distance(distance)
            )
            for item, distance in ranked
        ]

    def list_messages_missing_embedding(
        self, limit: int, roles: tuple[str, ...]
    ) -> list[MessageRecord]:
        with self._lock:
            rows = [
                item.model_copy(deep=True)
                for item in self._messages.values()
                if item.embedding is None and item.role in roles and item.message.strip()
            ]
        rows.reverse()
        return rows[:limit]

    def set_message_embedding(self, message_id: str, embedding: list[float]) -> None:
        with self._lock:
            current = self._messages.get(message_id)
            if current is None:
                raise NotFoundError(f"Message {message_id} does not exist")
            self._messages[message_id] = current.model_copy(update={"embedding": list(embedding)})

    def create_email(self, user_id: str, **fields: Any) -> EmailRecord:
        fields.setdefault("gmail_message_id", str(uuid4()))
        fields.setdefault("received_at", _now())
        record = EmailRecord(id=str(uuid4()), user_id=user_id, **fields)
        with self._lock:
            self._emails[record.id] = record
        return record.model_copy(deep=True)

    def list_emails(
        self,
        user_id: str,
        *,
        limit: int,
        offset: int = 0,
        unread_only: bool = False,
        sender: str | None = None,
    ) -> tuple[list[EmailRecord], int]:
        needle = sender.lower() if sender else None
        with self._lock:
            rows = [
                item.model_copy(deep=True)
                for item in self._emails.values()
                if item.user_id == user_id
                and (not unread_only or item.is_unread)
                and (needle is None or needle in item.sender.lower())
            ]
        rows.sort(key=lambda item: item.received_at, reverse=True)
        return rows[offset : offset + limit], len(rows)

    def count_unread_emails(self, user_id: str) -> int:
        with self._lock:
            return sum(
                1 for item in self._emails.values() if item.user_id == user_id and item.is_unread
            )


def _now() -> datetime:
    return datetime.now(UTC)
