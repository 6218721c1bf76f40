import pytest
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from api.server import app
from core.task_queue import task_queue

PREFIX = "/api/browser"

@pytest.fixture
def client():
    """API client over a freshly cleared queue singleton."""
    task_queue.clear()
    yield TestClient(app)
    task_queue.clear()

def test_create_and_dequeue(client):
    """Enqueued tasks are handed out once, then the queue answers 204."""
    response = client.post(f"{PREFIX}/tasks", json={
        "action": "navigate",
        "target_url": "https://example.com/a",
        "ttl_seconds": 30
    })
    assert response.status_code == 201
    created = response.json()
    assert created["action"] == "navigate"
    assert created["ttl_seconds"] == 30
    assert created["created_at"].endswith("Z")

    response = client.get(f"{PREFIX}/tasks")
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]

    assert client.get(f"{PREFIX}/tasks").status_code == 204

@pytest.mark.parametrize("body,message", [
    ({}, "action is required"),
    ({"action": "navigate", "target_url": "not a url"}, "Invalid URL format"),
    ({"action": "navigate", "ttl_seconds": 0}, "ttl_seconds must be a positive number"),
    ({"action": "click", "params": {"selector": "javascript:alert(1)"}}, "dangerous pattern"),
])
def test_create_rejects_bad_input(client, body, message):
    response = client.post(f"{PREFIX}/tasks", json=body)
    assert response.status_code == 400
    assert message in response.json()["detail"]

def test_result_lifecycle(client):
    """Posted results are retrievable and listed most recent first."""
    task_id = client.post(f"{PREFIX}/tasks", json={"action": "click", "params": {"selector": "#go"}}).json()["id"]
    client.get(f"{PREFIX}/tasks")

    response = client.post(f"{PREFIX}/results/{task_id}", json={"status": "error", "error": "Timeout waiting for: #go (10000ms)"})
    assert response.status_code == 200
    assert response.json()["ok"] is True

    result = client.get(f"{PREFIX}/results/{task_id}").json()
    assert result["status"] == "error"
    assert result["error"].startswith("Timeout")

    listed = client.get(f"{PREFIX}/queue/results", params={"limit": 5}).json()["results"]
    assert listed[0]["task_id"] == task_id

def test_unknown_status_coerced_to_success(client):
    client.post(f"{PREFIX}/results/abc", json={"status": "done", "data": {"x": 1}})
    assert client.get(f"{PREFIX}/results/abc").json()["status"] == "success"

def test_missing_result_404(client):
    assert client.get(f"{PREFIX}/results/nope").status_code == 404

def test_invalid_completed_at(client):
    response = client.post(f"{PREFIX}/results/abc", json={"status": "success", "completed_at": "yesterday"})
    assert response.status_code == 400

def test_queue_status_and_pending(client):
    client.post(f"{PREFIX}/tasks", json={"action": "scroll_feed"})
    client.post(f"{PREFIX}/tasks", json={"action": "scrape"})

    status = client.get(f"{PREFIX}/queue").json()
    assert status["pending_count"] == 2
    assert status["total_in_queue"] == 2
    assert status["recent_results"] == []

    pending = client.get(f"{PREFIX}/queue/pending").json()["tasks"]
    assert [t["action"] for t in pending] == ["scroll_feed", "scrape"]

def test_results_limit_capped(client):
    for i in range(3):
        client.post(f"{PREFIX}/results/t{i}", json={"status": "success"})

    assert len(client.get(f"{PREFIX}/queue/results", params={"limit": 2}).json()["results"]) == 2
    assert len(client.get(f"{PREFIX}/queue/results", params={"limit": 5000}).json()["results"]) == 3

def test_cancel_task(client):
    task_id = client.post(f"{PREFIX}/tasks", json={"action": "click"}).json()["id"]

    assert client.delete(f"{PREFIX}/tasks/{task_id}").json() == {"ok": True, "removed": 1}
    assert client.delete(f"{PREFIX}/tasks/{task_id}").json() == {"ok": False, "removed": 0}

def test_clear_queue(client):
    client.post(f"{PREFIX}/tasks", json={"action": "click"})
    response = client.delete(f"{PREFIX}/queue")

    assert response.json()["ok"] is True
    assert client.get(f"{PREFIX}/queue").json()["total_in_queue"] == 0

def test_callback_fired_after_result(client):
    """A result for a task with callback_url is forwarded in the background."""
    task_id = client.post(f"{PREFIX}/tasks", json={
        "action": "click",
        "callback_url": "https://hooks.example.com/done",
        "correlation_id": "c-9"
    }).json()["id"]
    client.get(f"{PREFIX}/tasks")

    with patch("api.routes.deliver_callback", new=AsyncMock(return_value=True)) as deliver:
        client.post(f"{PREFIX}/results/{task_id}", json={"status": "success"})

    deliver.assert_awaited_once()
    task, result = deliver.await_args.args
    assert task.correlation_id == "c-9"
    assert result.task_id == task_id

def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert "total_enqueued" in body["queue_stats"]
