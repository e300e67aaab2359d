from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


def _chat(client: TestClient, text: str, *, headers: dict[str, str]):
    return client.post(
        "/chat",
        json={"messages": [{"role": "user", "content": text}]},
        headers=headers,
    )


def test_chat_creates_task_and_streams_ndjson(client: TestClient, as_user, ndjson) -> None:
    response = _chat(client, "create a task called Buy milk", headers=as_user())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = ndjson(response.text)
    types = [event["type"] for event in events]
    assert types[:2] == ["tool_call", "tool_result"]
    assert types[-1] == "done"
    assert events[-1]["outcome"] == "completed"

    call, result = events[0], events[1]
    assert call["tool"] == "createTask"
    assert result["widget"] == "task-card"
    assert result["result"]["success"] is True
    assert [event["seq"] for event in events] == sorted(event["seq"] for event in events)

    text = "".join(event["text"] for event in events if event["type"] == "text_delta")
    assert text == 'Done! I added "Buy milk" to your tasks.'

    tasks = client.get("/tasks", headers=as_user()).json()["data"]
    assert [task["title"] for task in tasks] == ["Buy milk"]


def test_chat_continues_from_prior_history(client: TestClient, as_user, ndjson) -> None:
    first = ndjson(_chat(client, "add a task: water plants", headers=as_user()).text)
    assert first[-1]["outcome"] == "completed"

    response = client.post(
        "/chat",
        json={
            "messages": [
                {"role": "user", "content": "add a task: water plants"},
                {"role": "assistant", "content": 'Done! I added "water plants" to your tasks.'},
                {"role": "user", "content": "show my tasks"},
            ]
        },
        headers=as_user(),
    )
    events = ndjson(response.text)

    assert events[0]["tool"] == "listTasks"
    text = "".join(event["text"] for event in events if event["type"] == "text_delta")
    assert "water plants" in text


def test_chat_answers_time_questions(client: TestClient, as_user, ndjson) -> None:
    events = ndjson(_chat(client, "what time is it?", headers=as_user()).text)

    result = next(event for event in events if event["type"] == "tool_result")
    assert result["tool"] == "getTime"
    assert "widget" not in result
    text = "".join(event["text"] for event in events if event["type"] == "text_delta")
    assert text == "It's Sunday, 19 October 2025, 12:00:00 PM."


def test_chat_requires_identity(client: TestClient) -> None:
    response = _chat(client, "show my tasks", headers={})
    assert response.status_code == 401


def test_chat_rejects_history_not_ending_with_user(client: TestClient, as_user) -> None:
    response = client.post(
        "/chat",
        json={"messages": [{"role": "assistant", "content": "hi"}]},
        headers=as_user(),
    )
    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "messages"


def test_chat_rejects_empty_history(client: TestClient, as_user) -> None:
    response = client.post("/chat", json={"messages": []}, headers=as_user())
    assert response.status_code == 400
    assert response.json()["kind"] == "ValidationError"
