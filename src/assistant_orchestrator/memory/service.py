"""Embedding-aware writes and similarity search over tasks and chat messages."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pydantic import BaseModel, Field

from assistant_orchestrator.errors import EmbeddingError
from assistant_orchestrator.memory.embeddings import Embedder
from assistant_orchestrator.memory.similarity import max_distance_for
from assistant_orchestrator.storage.base import AssistantStorage
from assistant_orchestrator.storage.models import (
    EMBEDDED_ROLES,
    MessageMatch,
    MessageRecord,
    TaskMatch,
    TaskRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.7
DEFAULT_SIMILARITY_LIMIT = 10


class RelevantContext(BaseModel):
    tasks: list[TaskMatch] = Field(default_factory=list)
    messages: list[MessageMatch] = Field(default_factory=list)


class BackfillReport(BaseModel):
    tasks_embedded: int = 0
    messages_embedded: int = 0
    failures: int = 0


class MemoryService:
    """Write path that attaches embeddings and read path that ranks by cosine distance.

    Embedding failures on writes are logged and swallowed: the row is stored
    without a vector and picked up later by ``backfill_embeddings``. Failures
    while embedding a *query* raise ``EmbeddingError``.
    """

    def __init__(
        self,
        storage: AssistantStorage,
        embedder: Embedder | None = None,
        *,
        default_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        default_limit: int = DEFAULT_SIMILARITY_LIMIT,
    ) -> None:
        self.storage = storage
        self.embedder = embedder
        self.default_threshold = default_threshold
        self.default_limit = default_limit

    def create_message(
        self,
        *,
        user_id: str,
        session_id: str | None,
        role: str,
        message: str,
        embedding: list[float] | None = None,
    ) -> MessageRecord:
        if embedding is None and role in EMBEDDED_ROLES:
            embedding = self._try_embed(message, kind="message")
        return self.storage.create_message(
            user_id=user_id,
            session_id=session_id,
            role=role,
            message=message,
            embedding=embedding,
        )

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
        if embedding is None and task_instruction.strip():
            embedding = self._try_embed(task_instruction, kind="task")
        return self.storage.create_task(
            user_id=user_id,
            task_instruction=task_instruction,
            current_summary=current_summary,
            next_instruction=next_instruction,
            context=context,
            embedding=embedding,
        )

    def search_tasks(
        self,
        user_id: str,
        query: str,
        *,
        threshold: float | None = None,
        limit: int | None = None,
        include_completed: bool = True,
    ) -> list[TaskMatch]:
        max_distance, limit = self._bounds(threshold, limit)
        vector = self._embed_query(query)
        return self.storage.search_tasks(
            user_id,
            vector,
            max_distance=max_distance,
            limit=limit,
            include_completed=include_completed,
        )

    def search_chat_messages(
        self,
        user_id: str,
        query: str,
        *,
        threshold: float | None = None,
        limit: int | None = None,
        role: str | None = None,
        session_id: str | None = None,
    ) -> list[MessageMatch]:
        max_distance, limit = self._bounds(threshold, limit)
        vector = self._embed_query(query)
        return self.storage.search_messages(
            user_id,
            vector,
            max_distance=max_distance,
            limit=limit,
            role=role,
            session_id=session_id,
        )

    def find_relevant_context(
        self,
        user_id: str,
        query: str,
        *,
        task_limit: int = 5,
        message_limit: int = 5,
        threshold: float | None = None,
    ) -> RelevantContext:
        max_distance, _ = self._bounds(threshold, None)
        vector = self._embed_query(query)

        with ThreadPoolExecutor(max_workers=2) as pool:
            tasks_future = pool.submit(
                self.storage.search_tasks,
                user_id,
                vector,
                max_distance=max_distance,
                limit=task_limit,
            )
            messages_future = pool.submit(
                self.storage.search_messages,
                user_id,
                vector,
                max_distance=max_distance,
                limit=message_limit,
                role="user",
            )
            return RelevantContext(
                tasks=tasks_future.result(),
                messages=messages_future.result(),
            )

    def backfill_embeddings(self, limit: int = 100) -> BackfillReport:
        report = BackfillReport()
        if self.embedder is None:
            logger.warning("event=backfill_skipped reason=no_embedder")
            return report

        for task in self.storage.list_tasks_missing_embedding(limit):
            vector = self._try_embed(task.task_instruction, kind="task")
            if vector is None:
                report.failures += 1
                continue
            self.storage.update_task(task.id, embedding=vector)
            report.tasks_embedded += 1

        roles = tuple(sorted(EMBEDDED_ROLES))
        for message in self.storage.list_messages_missing_embedding(limit, roles):
            vector = self._try_embed(message.message, kind="message")
            if vector is None:
                report.failures += 1
                continue
            self.storage.set_message_embedding(message.id, vector)
            report.messages_embedded += 1

        logger.info(
            "event=backfill_done tasks=%d messages=%d failures=%d",
            report.tasks_embedded,
            report.messages_embedded,
            report.failures,
        )
        return report

    def _bounds(self, threshold: float | None, limit: int | None) -> tuple[float, int]:
        effective_threshold = self.default_threshold if threshold is None else threshold
        effective_limit = self.default_limit if limit is None else limit
        return max_distance_for(effective_threshold), max(effective_limit, 0)

    def _embed_query(self, query: str) -> list[float]:
        if self.embedder is None:
            raise EmbeddingError("No embedding client configured")
        if not query.strip():
            raise EmbeddingError("Search query is empty")
        return self.embedder.embed(query)

    def _try_embed(self, text: str, *, kind: str) -> list[float] | None:
        if self.embedder is None or not text.strip():
            return None
        try:
            return self.embedder.embed(text)
        except Exception as exc:  # noqa: BLE001
            logger.warning("event=embedding_failed kind=%s reason=%s", kind, exc)
            return None
