from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from assistant_orchestrator.jobs.postgres import PostgresJobQueue
from assistant_orchestrator.storage.postgres import PostgresStorage


def _database_url() -> str:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and ORCHESTRATOR_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    database_url = os.getenv("ORCHESTRATOR_DATABASE_URL")
    if not database_url:
        pytest.skip("ORCHESTRATOR_DATABASE_URL is required for integration tests.")
    return database_url


@pytest.fixture
def pg_storage() -> Iterator[PostgresStorage]:
    storage = PostgresStorage(_database_url())
    storage.migrate()
    yield storage


@pytest.fixture
def pg_queue() -> Iterator[PostgresJobQueue]:
    queue = PostgresJobQueue(_database_url())
    queue.migrate()
    yield queue
