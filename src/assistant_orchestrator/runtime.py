"""Wire storage, queue, memory, LLM gateway, dispatcher, and engine from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.engine.continuation import ContinuationEngine
from assistant_orchestrator.engine.dispatcher import OrchestratorDispatcher
from assistant_orchestrator.jobs.postgres import PostgresJobQueue
from assistant_orchestrator.jobs.queue import INBOUND_EVENT, TASK_CONTINUATION, JobQueue
from assistant_orchestrator.jobs.worker import JobWorker
from assistant_orchestrator.llm.gateway import LLMGateway, OpenAIToolCallingGateway
from assistant_orchestrator.memory.embeddings import Embedder, OpenAIEmbeddingClient
from assistant_orchestrator.memory.service import MemoryService
from assistant_orchestrator.storage.base import AssistantStorage
from assistant_orchestrator.storage.postgres import PostgresStorage
from assistant_orchestrator.tools.catalogue import build_registry

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    storage: AssistantStorage
    queue: JobQueue
    memory: MemoryService
    gateway: LLMGateway | None
    dispatcher: OrchestratorDispatcher
    engine: ContinuationEngine

    def build_worker(self, *, worker_id: str | None = None) -> JobWorker:
        return JobWorker(
            self.queue,
            {
                INBOUND_EVENT: self.dispatcher.handle_job,
                TASK_CONTINUATION: self.engine.handle_job,
            },
            worker_id=worker_id,
            poll_interval_s=self.settings.worker_poll_interval_s,
            max_attempts=self.settings.job_max_attempts,
            retry_base_s=self.settings.job_retry_base_s,
            retry_max_s=self.settings.job_retry_max_s,
        )


def build_runtime(
    settings: Settings,
    *,
    storage: AssistantStorage | None = None,
    queue: JobQueue | None = None,
    gateway: LLMGateway | None = None,
    embedder: Embedder | None = None,
    migrate: bool = False,
) -> Runtime:
    if storage is None or queue is None:
        database_url = settings.resolved_database_url()
        if not database_url:
            raise RuntimeError(
                "Missing database URL. Set ASSISTANT_ORCHESTRATOR_DATABASE_URL "
                "or ORCHESTRATOR_DATABASE_URL."
            )
        if storage is None:
            storage = PostgresStorage(database_url)
        if queue is None:
            queue = PostgresJobQueue(database_url)
    if migrate:
        storage.migrate()
        if isinstance(queue, PostgresJobQueue):
            queue.migrate()

    api_key = settings.resolved_openai_api_key()
    if gateway is None and api_key:
        gateway = OpenAIToolCallingGateway.from_settings(settings)
    if embedder is None and api_key:
        embedder = OpenAIEmbeddingClient.from_settings(settings)
    if not api_key and gateway is None:
        logger.warning("event=llm_unconfigured reason=OPENAI_API_KEY missing")

    memory = MemoryService(
        storage,
        embedder,
        default_threshold=settings.similarity_threshold,
        default_limit=settings.similarity_limit,
    )
    registry = build_registry()
    return Runtime(
        settings=settings,
        storage=storage,
        queue=queue,
        memory=memory,
        gateway=gateway,
        dispatcher=OrchestratorDispatcher(
            storage=storage,
            memory=memory,
            gateway=gateway,
            queue=queue,
            settings=settings,
            registry=registry,
        ),
        engine=ContinuationEngine(
            storage=storage,
            memory=memory,
            gateway=gateway,
            queue=queue,
            settings=settings,
            registry=registry,
        ),
    )
