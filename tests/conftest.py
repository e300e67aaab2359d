from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import pytest

from task_assistant.services import TaskService, static_identity
from task_assistant.storage.memory import InMemoryTaskStorage
from tests.fakes import FROZEN_NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FROZEN_NOW


@pytest.fixture
def storage() -> InMemoryTaskStorage:
    return InMemoryTaskStorage()


@pytest.fixture
def service_for(storage: InMemoryTaskStorage) -> Callable[[str | None], TaskService]:
    def _build(external_id: str | None) -> TaskService:
        return TaskService(storage, static_identity(external_id), auto_provision_users=True)

    return _build


@pytest.fixture
def service(service_for: Callable[[str | None], TaskService]) -> TaskService:
    return service_for("user-a")
