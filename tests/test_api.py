from __future__ import annotations

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from voicegate.api.routes_voice import event_source
from voicegate.core.config import Settings
from voicegate.core.hub import HEARTBEAT_FRAME
from voicegate.main import create_app


def _settings(**overrides) -> Settings:
    params = dict(wait_timeout_seconds=0.1, wait_poll_interval_ms=10, notification_sound_enabled=False)
    params.update(overrides)
    return Settings(**params)


@pytest.fixture()
def app():
    return create_app(_settings())


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_submit_and_list_utterances(client) -> None:
    res = await client.post("/api/potential-utterances", json={"text": "  Hello world "})
    assert res.status_code == 200
    data = res.json()
    assert data["success"] is True
    assert data["utterance"]["text"] == "Hello world"
    assert data["utterance"]["status"] == "pending"

    await client.post("/api/potential-utterances", json={"text": "second"})
    listing = (await client.get("/api/utterances", params={"limit": 1})).json()
    assert [u["text"] for u in listing["utterances"]] == ["second"]

    status = (await client.get("/api/utterances/status")).json()
    assert status == {"total": 2, "pending": 2, "delivered": 0, "responded": 0}


@pytest.mark.asyncio
async def test_submit_rejects_empty_text(client) -> None:
    res = await client.post("/api/potential-utterances", json={"text": "   "})
    assert res.status_code == 400
    error = res.json()["detail"]["error"]
    assert error["code"] == "VG_4000"
    assert error["message"] == "Text is required"


@pytest.mark.asyncio
async def test_dequeue_requires_voice_input(client) -> None:
    await client.post("/api/potential-utterances", json={"text": "hello"})
    res = await client.post("/api/dequeue-utterances")
    assert res.status_code == 400
    assert "Voice input is not active" in res.json()["detail"]["error"]["message"]

    await client.post("/api/voice-input", json={"active": True})
    res = await client.post("/api/dequeue-utterances")
    assert res.status_code == 200
    assert [u["status"] for u in res.json()["utterances"]] == ["delivered"]


@pytest.mark.asyncio
async def test_voice_input_rejects_non_boolean(client) -> None:
    res = await client.post("/api/voice-input", json={"active": "yes"})
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_conversation_sync_and_order(client) -> None:
    await client.post("/api/voice-input", json={"active": True})
    await client.post("/api/voice-responses", json={"enabled": True})
    added = (await client.post("/api/potential-utterances", json={"text": "User message"})).json()
    message_id = added["utterance"]["id"]

    conv = (await client.get("/api/conversation")).json()["messages"]
    assert conv[0]["status"] == "pending"

    await client.post("/api/dequeue-utterances")
    conv = (await client.get("/api/conversation")).json()["messages"]
    assert conv[0]["status"] == "delivered"

    res = await client.post("/api/speak", json={"text": "Response"})
    assert res.json() == {"success": True, "message": "Text spoken successfully", "responded_count": 1}

    conv = (await client.get("/api/conversation")).json()["messages"]
    assert [(m["role"], m["text"]) for m in conv] == [("user", "User message"), ("assistant", "Response")]
    assert next(m for m in conv if m["id"] == message_id)["status"] == "responded"
    assert "status" not in conv[1]


@pytest.mark.asyncio
async def test_speak_disabled_returns_400(client) -> None:
    res = await client.post("/api/speak", json={"text": "Test message"})
    assert res.status_code == 400
    error = res.json()["detail"]["error"]
    assert error["message"] == "Voice responses are disabled"
    assert error["details"] == "Cannot speak when voice responses are disabled"
    conv = (await client.get("/api/conversation")).json()["messages"]
    assert conv == []


@pytest.mark.asyncio
async def test_wait_endpoint_returns_delivered(client) -> None:
    await client.post("/api/voice-input", json={"active": True})
    await client.post("/api/potential-utterances", json={"text": "ready"})
    data = (await client.post("/api/wait-for-utterances")).json()
    assert data["outcome"] == "found"
    assert data["count"] == 1
    assert data["utterances"][0]["status"] == "delivered"

    data = (await client.post("/api/wait-for-utterances")).json()
    assert data["outcome"] == "timeout"
    assert data["utterances"] == []


@pytest.mark.asyncio
async def test_preferences_partial_update(client) -> None:
    res = await client.post("/api/voice-preferences", json={"voice_responses_enabled": True})
    assert res.json()["preferences"] == {"voice_input_active": False, "voice_responses_enabled": True}
    res = await client.get("/api/voice-preferences")
    assert res.json()["preferences"]["voice_responses_enabled"] is True


@pytest.mark.asyncio
async def test_clear_utterances(client) -> None:
    await client.post("/api/potential-utterances", json={"text": "a"})
    res = await client.delete("/api/utterances")
    assert res.json()["cleared_count"] == 1
    assert (await client.get("/api/has-pending-utterances")).json() == {"has_pending": False, "pending_count": 0}


@pytest.mark.asyncio
async def test_hooks_follow_priority_order(client) -> None:
    assert (await client.post("/api/hooks/stop")).json()["decision"] == "approve"

    await client.post("/api/voice-input", json={"active": True})
    await client.post("/api/voice-responses", json={"enabled": True})
    await client.post("/api/potential-utterances", json={"text": "fix the bug"})

    blocked = (await client.post("/api/hooks/pre-tool")).json()
    assert blocked["decision"] == "block"
    assert '"fix the bug"' in blocked["reason"]

    still = (await client.post("/api/hooks/post-tool")).json()
    assert still["decision"] == "block"
    assert "1 delivered utterance(s)" in still["reason"]

    assert (await client.post("/api/hooks/pre-speak")).json() == {"decision": "approve"}
    await client.post("/api/speak", json={"text": "on it"})
    assert (await client.post("/api/hooks/post-tool")).json() == {"decision": "approve"}
    assert (await client.post("/api/hooks/pre-wait")).json()["decision"] == "block"


@pytest.mark.asyncio
async def test_validate_action_returns_followup() -> None:
    app = create_app(_settings(auto_deliver_voice_input=False))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        await ac.post("/api/voice-input", json={"active": True})
        await ac.post("/api/potential-utterances", json={"text": "Hello"})
        data = (await ac.post("/api/validate-action", json={"action": "tool-use"})).json()
        assert data["decision"] == "block"
        assert data["required_followup"] == "dequeue"
        assert "1 pending utterance(s)" in data["reason"]

        res = await ac.post("/api/validate-action", json={"action": "invalid"})
        assert res.status_code == 422


@pytest.mark.asyncio
async def test_speak_system_ignores_preferences(client, monkeypatch) -> None:
    async def fake_run(command):
        return None

    monkeypatch.setattr("voicegate.core.speech._run", fake_run)
    res = await client.post("/api/speak-system", json={"text": "System test message", "rate": 300})
    assert res.json() == {"success": True, "message": "Text spoken successfully via system voice"}
    assert (await client.post("/api/speak-system", json={})).status_code == 400


@pytest.mark.asyncio
async def test_health_reports_observers(client, app) -> None:
    app.state.voice.connect_observer()
    data = (await client.get("/health")).json()
    assert data["status"] == "ok"
    assert data["observers"] == 1
    assert data["auto_deliver"] is True


@pytest.mark.asyncio
async def test_metrics_disabled_by_default(client) -> None:
    assert (await client.get("/metrics")).status_code == 404


@pytest.mark.asyncio
async def test_trace_id_is_echoed(client) -> None:
    res = await client.get("/health", headers={"X-Trace-Id": "abc123"})
    assert res.headers["X-Trace-Id"] == "abc123"


@pytest.mark.asyncio
async def test_event_source_streams_and_unsubscribes(app) -> None:
    service = app.state.voice
    service.set_preferences(True, True)
    disconnected = False

    async def is_disconnected() -> bool:
        return disconnected

    stream = event_source(service, is_disconnected, heartbeat=0.01)
    assert service.hub.observer_count == 0
    frames = [await stream.__anext__()]
    assert service.hub.observer_count == 1
    service.hub.notify_speak("bonjour")
    frames.append(await stream.__anext__())
    frames.append(await stream.__anext__())
    disconnected = True
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()

    assert json.loads(frames[0][len("data: "):]) == {"type": "connected"}
    assert json.loads(frames[1][len("data: "):]) == {"type": "speak", "text": "bonjour"}
    assert frames[2] == HEARTBEAT_FRAME
    assert service.hub.observer_count == 0
    assert service.context.voice_input_active is False


@pytest.mark.asyncio
async def test_event_source_never_started_registers_nobody(app) -> None:
    service = app.state.voice

    async def is_disconnected() -> bool:
        return True

    stream = event_source(service, is_disconnected, heartbeat=0.01)
    await stream.aclose()
    assert service.hub.observer_count == 0

    stream = event_source(service, is_disconnected, heartbeat=0.01)
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert service.hub.observer_count == 0


@pytest.mark.asyncio
async def test_event_source_closed_mid_stream_unsubscribes(app) -> None:
    service = app.state.voice

    async def is_disconnected() -> bool:
        return False

    stream = event_source(service, is_disconnected, heartbeat=0.01)
    await stream.__anext__()
    assert service.hub.observer_count == 1
    await stream.aclose()
    assert service.hub.observer_count == 0
