from __future__ import annotations

import pytest

from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.jobs.queue import InMemoryJobQueue
from assistant_orchestrator.memory.service import MemoryService
from assistant_orchestrator.storage.memory import InMemoryStorage
from assistant_orchestrator.tools.registry import ToolContext

from fakes import FakeEmbedder, ScriptedGateway


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="", database_url="", max_task_steps=5, task_lease_ttl_s=60)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def memory(storage: InMemoryStorage, embedder: FakeEmbedder) -> MemoryService:
    return MemoryService(storage, embedder)


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def user(storage: InMemoryStorage):
    return storage.create_user("ada@example.com", name="Ada", gmail_read=True)


@pytest.fixture
def other_user(storage: InMemoryStorage):
    return storage.create_user("eve@example.com", name="Eve")


@pytest.fixture
def session(storage: InMemoryStorage, user):
    return storage.create_chat_session(user.id, title="Inbox help")


@pytest.fixture
def tool_context(storage, memory, settings, queue, user, session) -> ToolContext:
    return ToolContext(
        user_id=user.id,
        storage=storage,
        memory=memory,
        settings=settings,
        queue=queue,
        session_id=session.id,
    )
