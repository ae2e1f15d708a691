"""Storage backends and models."""

from assistant_orchestrator.storage.base import AssistantStorage
from assistant_orchestrator.storage.memory import InMemoryStorage
from assistant_orchestrator.storage.models import (
    ChatSessionRecord,
    EmailRecord,
    InstructionRecord,
    MessageMatch,
    MessageRecord,
    TaskMatch,
    TaskRecord,
    UserRecord,
)
from assistant_orchestrator.storage.postgres import PostgresStorage

__all__ = [
    "AssistantStorage",
    "ChatSessionRecord",
    "EmailRecord",
    "InMemoryStorage",
    "InstructionRecord",
    "MessageMatch",
    "MessageRecord",
    "PostgresStorage",
    "TaskMatch",
    "TaskRecord",
    "UserRecord",
]
