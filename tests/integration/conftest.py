from __future__ import annotations

import json
import os
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from task_assistant.api.main import create_app
from task_assistant.config.settings import Settings
from task_assistant.storage.memory import InMemoryTaskStorage
from task_assistant.storage.postgres import PostgresTaskStorage
from tests.fakes import FROZEN_NOW


@pytest.fixture
def settings() -> Settings:
    return Settings(assistant_mode="deterministic", database_url="", log_level="DEBUG")


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    app = create_app(
        storage=InMemoryTaskStorage(clock=lambda: FROZEN_NOW),
        settings_override=settings,
        clock=lambda: FROZEN_NOW,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def as_user():
    def _headers(user_id: str = "user-a") -> dict[str, str]:
        return {"X-User-Id": user_id}

    return _headers


@pytest.fixture
def postgres_storage() -> PostgresTaskStorage:
    database_url = os.getenv("TASK_ASSISTANT_TEST_DATABASE_URL")
    if not database_url:
        pytest.skip("Set TASK_ASSISTANT_TEST_DATABASE_URL to run PostgreSQL storage tests.")
    storage = PostgresTaskStorage(database_url)
    storage.migrate()
    return storage


def read_ndjson(body: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in body.splitlines() if line.strip()]


@pytest.fixture
def ndjson():
    return read_ndjson
