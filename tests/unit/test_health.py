from fastapi.testclient import TestClient

from assistant_orchestrator.api.main import create_app
from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.messaging.outbound import LoggingMessageSender
from assistant_orchestrator.storage.memory import InMemoryTaskStorage


def _client() -> TestClient:
    app = create_app(
        storage=InMemoryTaskStorage(),
        settings_override=Settings(app_release="abc1234", webhook_path="/webhooks/whatsapp"),
        sender=LoggingMessageSender(),
    )
    return TestClient(app)


def test_health_endpoint() -> None:
    response = _client().get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_status_page_shows_release() -> None:
    response = _client().get("/webhooks/whatsapp")

    assert response.status_code == 200
    assert "is up and running" in response.text
    assert "<b>abc1234</b>" in response.text


def test_tools_endpoint_lists_registered_tools() -> None:
    response = _client().get("/tools")

    assert response.status_code == 200
    assert response.json()["tools"] == [
        "create_calendar_event",
        "summarize",
        "add_expense",
        "complete_task",
    ]


def test_message_status_callback_is_acknowledged() -> None:
    response = _client().post("/webhooks/whatsapp/message-status", json={"status": "read"})

    assert response.status_code == 200


def test_unknown_task_returns_404() -> None:
    response = _client().get("/tasks/does-not-exist")

    assert response.status_code == 404
