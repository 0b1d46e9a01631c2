from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime
from typing import Any

import jwt
from fastapi.testclient import TestClient

from assistant_orchestrator.api import main as api_main
from assistant_orchestrator.api.main import create_app
from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.errors import ModelCallError, StorageError
from assistant_orchestrator.messaging.outbound import LoggingMessageSender
from assistant_orchestrator.storage.memory import InMemoryTaskStorage

SECRET = "signature-secret-for-webhook-tests-0123"
OWNER = "15551234567"
PATH = "/webhooks/whatsapp"
NOW = datetime(2026, 10, 18, 20, 0, tzinfo=UTC)

EVENT_ARGS = {
    "title": "Meeting",
    "start": "2026-10-19T15:00:00",
    "end": "2026-10-19T16:00:00",
    "timeZone": "America/Los_Angeles",
}


class FlakyStorage(InMemoryTaskStorage):
    def append_and_update_task(self, task_id, **kwargs) -> None:
        raise StorageError("connection refused")


def _build(model, *, storage=None, **settings_overrides: Any):
    storage = storage or InMemoryTaskStorage()
    sender = LoggingMessageSender()
    settings = Settings(
        webhook_path=PATH,
        webhook_secret=SECRET,
        allowed_sender=OWNER,
        **settings_overrides,
    )
    app = create_app(storage=storage, settings_override=settings, model=model, sender=sender)
    return TestClient(app), storage, sender


def _post(client: TestClient, payload: dict[str, Any], *, secret: str = SECRET):
    body = json.dumps(payload).encode("utf-8")
    token = jwt.encode(
        {"payload_hash": hashlib.sha256(body).hexdigest()}, secret, algorithm="HS256"
    )
    return client.post(
        PATH,
        content=body,
        headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
    )


def _text(content: str, *, sender: str = OWNER, message_id: str = "msg-1") -> dict[str, Any]:
    return {
        "message_uuid": message_id,
        "timestamp": NOW.isoformat(),
        "from": sender,
        "to": "14157386102",
        "channel": "whatsapp",
        "message_type": "text",
        "text": content,
    }


def test_calendar_booking_end_to_end(scripted_model) -> None:
    model = scripted_model([{"tool": "create_calendar_event", "args": EVENT_ARGS}, "Booked."])
    client, storage, sender = _build(model)

    response = _post(client, _text("Book a meeting tomorrow 3-4pm PT"))

    assert response.status_code == 200
    assert sender.sent == ["Booked."]
    active = storage.get_or_create_active_task(OWNER, NOW)
    assert [(entry.role, entry.content) for entry in active.history] == [
        ("user", "Book a meeting tomorrow 3-4pm PT"),
        ("model", "Booked."),
    ]

    task = client.get(f"/tasks/{active.task_id}").json()
    assert task["status"] == "in_progress"
    assert task["messages"][0]["message_id"] == "msg-1"
    assert task["messages"][0]["message_type"] == "text"


def test_follow_up_message_sees_prior_history(scripted_model) -> None:
    model = scripted_model(["First reply.", "Second reply."])
    client, storage, _ = _build(model)

    _post(client, _text("first", message_id="a"))
    _post(client, _text("second", message_id="b"))

    second_call = model.calls[1]["messages"]
    assert [(item["role"], item["content"]) for item in second_call[1:]] == [
        ("user", "first"),
        ("assistant", "First reply."),
        ("user", "second"),
    ]


def test_completed_task_starts_fresh_conversation(scripted_model) -> None:
    model = scripted_model(
        [
            {"tool": "complete_task", "args": {"taskStatus": "success"}},
            "All done!",
            "New task started.",
        ]
    )
    client, storage, sender = _build(model)

    _post(client, _text("that's everything", message_id="a"))
    first_task = storage.get_or_create_active_task(OWNER, NOW)
    assert first_task.history == []

    _post(client, _text("new thing", message_id="b"))

    assert sender.sent == ["All done!", "New task started."]
    # The completed task's history is not replayed to the model.
    assert [item["role"] for item in model.calls[-1]["messages"]] == ["system", "user"]


def test_model_failure_sends_error_and_persists_nothing(scripted_model) -> None:
    model = scripted_model([ModelCallError("quota exceeded")])
    client, storage, sender = _build(model)

    response = _post(client, _text("hello"))

    assert response.status_code == 200
    assert sender.sent == ["❌ LLM call error"]
    assert storage.get_or_create_active_task(OWNER, NOW).history == []


def test_round_limit_aborts_cycle(scripted_model) -> None:
    model = scripted_model([{"tool": "summarize", "args": {"summary": "x"}}], repeat_last=True)
    client, storage, sender = _build(model, max_tool_rounds=2)

    _post(client, _text("loop forever"))

    assert sender.sent == ["❌ Too many tool calls, please try again"]
    assert storage.get_or_create_active_task(OWNER, NOW).history == []


def test_storage_failure_after_reply_reports_database_error(scripted_model) -> None:
    model = scripted_model(["Sure."])
    client, _, sender = _build(model, storage=FlakyStorage())

    _post(client, _text("hi"))

    assert sender.sent == ["Sure.", "❌ Database error"]


def test_unauthorized_sender_gets_warning_without_model_call(scripted_model) -> None:
    model = scripted_model([])
    client, _, sender = _build(model)

    response = _post(client, _text("hi", sender="19999999999"))

    assert response.status_code == 200
    assert sender.sent == ["⚠️ Unauthorized"]
    assert model.calls == []


def test_unsupported_message_type_is_reported(scripted_model) -> None:
    model = scripted_model([])
    client, _, sender = _build(model)
    payload = _text("")
    payload.update({"message_type": "video", "video": {"url": "https://api.nexmo.com/v"}})

    _post(client, payload)

    assert sender.sent == ["⚠️ Message type not supported"]


def test_bad_signature_is_rejected(scripted_model) -> None:
    model = scripted_model([])
    client, _, sender = _build(model)

    response = _post(client, _text("hi"), secret="wrong-secret-for-webhook-tests-000000")

    assert response.status_code == 401
    assert sender.sent == []


def test_malformed_payload_is_rejected(scripted_model) -> None:
    model = scripted_model([])
    client, _, sender = _build(model)

    response = _post(client, {"unexpected": True})

    assert response.status_code == 400
    assert sender.sent == []


def test_media_message_reaches_model_as_content_part(scripted_model, monkeypatch) -> None:
    model = scripted_model(["Nice photo of a cat."])
    client, storage, sender = _build(model)
    service = client.app.state.service
    monkeypatch.setattr(service.media_fetcher, "_download", lambda url: b"\xff\xd8\xff")
    payload = _text("")
    payload.update(
        {
            "message_type": "image",
            "text": None,
            "image": {"url": "https://api.nexmo.com/v3/media/1", "name": "cat.jpg"},
        }
    )

    _post(client, payload)

    assert sender.sent == ["Nice photo of a cat."]
    content = model.calls[0]["messages"][-1]["content"]
    assert content[0]["type"] == "image_url"
    history = storage.get_or_create_active_task(OWNER, NOW).history
    assert history[0].content == "[image: msg-1.jpg]"


def test_webhook_acknowledges_when_runtime_cannot_be_built(monkeypatch) -> None:
    client, _, sender = _build(None)
    del client.app.state.service

    def _broken_model(settings):
        raise RuntimeError("model provider unavailable")

    monkeypatch.setattr(api_main, "build_chat_model", _broken_model)

    response = _post(client, _text("hi"))

    assert response.status_code == 200
    assert sender.sent == []
    assert not hasattr(client.app.state, "service")
