from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "task-assistant"}


def test_tools_lists_the_five_tools(client: TestClient) -> None:
    body = client.get("/tools").json()
    assert body["assistant_mode"] == "deterministic"
    assert body["tools"] == [
        "createTask",
        "deleteTask",
        "getTime",
        "listTasks",
        "updateTask",
    ]


def test_task_lifecycle(client: TestClient, as_user) -> None:
    created = client.post(
        "/tasks",
        json={"title": "  Buy milk ", "dueDate": "2025-10-20T12:30:00Z", "priority": "HIGH"},
        headers=as_user(),
    )
    assert created.status_code == 201
    task = created.json()["data"]
    assert task["title"] == "Buy milk"
    assert task["done"] is False
    assert task["dueDate"] == "2025-10-20T12:30:00.000Z"
    assert task["createdAt"] == "2025-10-19T06:30:00.000Z"

    fetched = client.get(f"/tasks/{task['id']}", headers=as_user())
    assert fetched.status_code == 200
    assert fetched.json()["data"] == task

    patched = client.patch(f"/tasks/{task['id']}", json={"done": True}, headers=as_user())
    assert patched.status_code == 200
    updated = patched.json()["data"]
    assert updated["done"] is True
    assert updated["title"] == "Buy milk"
    assert updated["priority"] == "HIGH"
    assert updated["dueDate"] == task["dueDate"]

    deleted = client.delete(f"/tasks/{task['id']}", headers=as_user())
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "message": "Task deleted successfully"}

    missing = client.get(f"/tasks/{task['id']}", headers=as_user())
    assert missing.status_code == 404
    assert missing.json()["kind"] == "NotFoundError"


def test_requests_without_identity_are_rejected(client: TestClient) -> None:
    response = client.get("/tasks")
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "Authentication required",
        "kind": "AuthenticationError",
    }


def test_tasks_are_invisible_to_other_users(client: TestClient, as_user) -> None:
    task_id = client.post("/tasks", json={"title": "Secret"}, headers=as_user("alice")).json()["data"]["id"]

    assert client.get(f"/tasks/{task_id}", headers=as_user("bob")).status_code == 404
    assert client.patch(f"/tasks/{task_id}", json={"done": True}, headers=as_user("bob")).status_code == 404
    assert client.delete(f"/tasks/{task_id}", headers=as_user("bob")).status_code == 404
    assert client.get("/tasks", headers=as_user("bob")).json()["data"] == []
    assert client.get(f"/tasks/{task_id}", headers=as_user("alice")).json()["data"]["done"] is False


def test_blank_title_is_a_validation_error(client: TestClient, as_user) -> None:
    response = client.post("/tasks", json={"title": "   "}, headers=as_user())

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert [issue["field"] for issue in body["details"]] == ["title"]
    assert client.get("/tasks", headers=as_user()).json()["data"] == []


def test_list_filters_and_ordering(client: TestClient, as_user) -> None:
    for title, priority in (("low", "LOW"), ("urgent", "URGENT"), ("plain", None)):
        payload = {"title": title}
        if priority:
            payload["priority"] = priority
        client.post("/tasks", json=payload, headers=as_user())

    every = client.get("/tasks", headers=as_user()).json()["data"]
    assert [task["title"] for task in every][0] == "urgent"

    urgent = client.get("/tasks", params={"priority": "URGENT"}, headers=as_user()).json()["data"]
    assert [task["title"] for task in urgent] == ["urgent"]

    searched = client.get("/tasks", params={"q": "PLA"}, headers=as_user()).json()["data"]
    assert [task["title"] for task in searched] == ["plain"]

    limited = client.get("/tasks", params={"limit": 2}, headers=as_user()).json()["data"]
    assert len(limited) == 2

    open_only = client.get("/tasks", params={"done": "false"}, headers=as_user()).json()["data"]
    assert len(open_only) == 3


@pytest.mark.parametrize("limit", [0, 101])
def test_list_limit_out_of_range_is_rejected(client: TestClient, as_user, limit: int) -> None:
    response = client.get("/tasks", params={"limit": limit}, headers=as_user())
    assert response.status_code == 400
    assert response.json()["kind"] == "ValidationError"


def test_malformed_query_is_a_validation_error(client: TestClient, as_user) -> None:
    response = client.get("/tasks", params={"done": "maybe"}, headers=as_user())
    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "done"


def test_patch_with_explicit_null_clears_due_date(client: TestClient, as_user) -> None:
    task_id = client.post(
        "/tasks",
        json={"title": "Call mom", "dueDate": "2025-10-20T12:30:00Z"},
        headers=as_user(),
    ).json()["data"]["id"]

    cleared = client.patch(f"/tasks/{task_id}", json={"dueDate": None}, headers=as_user())

    assert cleared.status_code == 200
    assert cleared.json()["data"]["dueDate"] is None
    assert cleared.json()["data"]["title"] == "Call mom"
