"""Tests for the HTTP layer: chat SSE, actions CRUD, cron trigger and auth"""

import asyncio
import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import dextra.server.app as server_module
from dextra.actions import TickResult
from dextra.models import Action, Message, MessageRole, UserProfile
from dextra.server.app import api, set_app
from dextra.streaming.models import AgentEvent, EventType, create_message_chunk_event


class FakeDextra:
    """Stands in for ``Dextra`` behind the routes."""

    def __init__(self):
        self.settings = SimpleNamespace(
            cron_secret="s3cret",
            limits=SimpleNamespace(cron_timeout=5),
        )
        self.profiles = {"user-1": UserProfile(user_id="user-1", wallet_public_key="W1")}
        self.received = []
        self.stream_error = None
        self.messages = {}
        self.actions = [Action(
            id="act-1", user_id="user-1", conversation_id="conv-1",
            name="SOL price", description="Check SOL", frequency=3600,
        )]
        self.updates = []
        self.update_result = "first"
        self.deleted = True
        self.ticks = 0
        self.tick_delay = 0

    async def get_profile(self, user_id):
        return self.profiles.get(user_id)

    async def stream_chat(self, user, conversation_id, message):
        self.received.append((user, conversation_id, message))
        yield AgentEvent(type=EventType.EXECUTION_START, data={"conversation_id": conversation_id})
        if self.stream_error:
            raise self.stream_error
        yield create_message_chunk_event("Hello", "m-1")

    async def get_conversation_messages(self, conversation_id, user_id):
        return self.messages.get((conversation_id, user_id))

    async def delete_conversation(self, conversation_id, user_id):
        return self.deleted

    async def list_actions(self, user_id):
        return [a for a in self.actions if a.user_id == user_id]

    async def update_action(self, action_id, user_id, changes):
        self.updates.append((action_id, user_id, changes))
        if isinstance(self.update_result, Exception):
            raise self.update_result
        return self.actions[0] if self.update_result == "first" else self.update_result

    async def delete_action(self, action_id, user_id):
        return self.deleted

    async def run_cron_tick(self):
        self.ticks += 1
        if self.tick_delay:
            await asyncio.sleep(self.tick_delay)
        return TickResult(fetched=1, processed=1)


@pytest.fixture
def fake(monkeypatch):
    monkeypatch.setattr(server_module, "_API_KEY", None)
    app = FakeDextra()
    set_app(app)
    yield app
    set_app(None)


@pytest.fixture
def client(fake):
    return TestClient(api)


AUTH = {"X-User-Id": "user-1"}


def _frames(text):
    return [chunk[len("data: "):] for chunk in text.strip().split("\n\n") if chunk]


# =========================================================================
# Auth
# =========================================================================


class TestAuth:

    def test_health_open(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_missing_user_id(self, client):
        resp = client.post("/api/chat", json={"conversation_id": "c1", "message": {"role": "user", "content": "hi"}})
        assert resp.status_code == 401

    def test_api_key_required_when_set(self, client, monkeypatch):
        monkeypatch.setattr(server_module, "_API_KEY", "k")
        assert client.get("/api/actions", headers=AUTH).status_code == 401
        assert client.get("/api/actions", headers={**AUTH, "X-API-Key": "k"}).status_code == 200
        assert client.get("/api/actions", headers={**AUTH, "Authorization": "Bearer k"}).status_code == 200

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(server_module, "_API_KEY", None)
        monkeypatch.setattr(server_module, "_config_path", "/nonexistent/config.yaml")
        set_app(None)
        resp = TestClient(api).get("/api/actions", headers=AUTH)
        assert resp.status_code == 503


# =========================================================================
# Chat
# =========================================================================


class TestChat:

    def test_streams_events_then_done(self, client, fake):
        resp = client.post(
            "/api/chat",
            headers=AUTH,
            json={"conversation_id": "c1", "message": {"role": "user", "content": "hi"}},
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        frames = _frames(resp.text)
        assert frames[-1] == "[DONE]"
        events = [json.loads(f) for f in frames[:-1]]
        assert [e["type"] for e in events] == ["execution_start", "message_chunk"]
        assert events[1]["data"]["chunk"] == "Hello"

        user, cid, message = fake.received[0]
        assert user.user_id == "user-1"
        assert cid == "c1"
        assert message.conversation_id == "c1"
        assert message.role == MessageRole.USER

    def test_button_press_payload_accepted(self, client, fake):
        message = {
            "role": "assistant",
            "content": "",
            "toolInvocations": [{
                "toolCallId": "tc-1",
                "toolName": "ask_for_confirmation",
                "state": "result",
                "result": {"result": "confirm"},
            }],
        }
        resp = client.post("/api/chat", headers=AUTH, json={"conversation_id": "c1", "message": message})

        assert resp.status_code == 200
        received = fake.received[0][2]
        assert received.tool_invocations[0].tool_call_id == "tc-1"

    def test_stream_failure_becomes_error_frame(self, client, fake):
        fake.stream_error = RuntimeError("boom")
        resp = client.post(
            "/api/chat",
            headers=AUTH,
            json={"conversation_id": "c1", "message": {"role": "user", "content": "hi"}},
        )

        frames = _frames(resp.text)
        assert frames[-1] == "[DONE]"
        assert json.loads(frames[-2]) == {"type": "error", "data": {"error": "An error occurred"}}

    @pytest.mark.parametrize("body", [
        {"conversation_id": "c1"},
        {"conversation_id": "c1", "message": {"role": "user", "content": "   "}},
    ])
    def test_missing_message(self, client, body):
        resp = client.post("/api/chat", headers=AUTH, json=body)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Missing message"

    def test_invalid_message(self, client):
        resp = client.post(
            "/api/chat", headers=AUTH,
            json={"conversation_id": "c1", "message": {"role": "robot", "content": "hi"}},
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize("invocations", [["x"], [1], "x"])
    def test_malformed_invocations_are_bad_request(self, client, fake, invocations):
        resp = client.post(
            "/api/chat", headers=AUTH,
            json={
                "conversation_id": "c1",
                "message": {"role": "assistant", "content": "", "toolInvocations": invocations},
            },
        )
        assert resp.status_code == 400
        assert fake.received == []

    def test_no_wallet(self, client, fake):
        fake.profiles["user-1"] = UserProfile(user_id="user-1", wallet_public_key=None)
        resp = client.post(
            "/api/chat", headers=AUTH,
            json={"conversation_id": "c1", "message": {"role": "user", "content": "hi"}},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No wallet found"

    def test_get_messages(self, client, fake):
        fake.messages[("c1", "user-1")] = [
            Message(conversation_id="c1", role=MessageRole.USER, content="hi", id="m1")
        ]
        resp = client.get("/api/chat/c1", headers=AUTH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["conversation_id"] == "c1"
        assert body["messages"][0]["id"] == "m1"

    def test_get_messages_not_found(self, client):
        assert client.get("/api/chat/other", headers=AUTH).status_code == 404

    def test_delete_conversation(self, client, fake):
        assert client.delete("/api/chat/c1", headers=AUTH).json() == {"success": True}
        fake.deleted = False
        assert client.delete("/api/chat/c1", headers=AUTH).status_code == 404


# =========================================================================
# Actions
# =========================================================================


class TestActions:

    def test_list(self, client):
        resp = client.get("/api/actions", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()[0]["frequency_label"] == "Hourly"

    def test_patch_only_sent_fields(self, client, fake):
        resp = client.patch("/api/actions/act-1", headers=AUTH, json={"name": "renamed"})
        assert resp.status_code == 200
        assert fake.updates == [("act-1", "user-1", {"name": "renamed"})]

    def test_patch_negative_frequency_rejected(self, client, fake):
        resp = client.patch("/api/actions/act-1", headers=AUTH, json={"frequency": -5})
        assert resp.status_code == 422
        assert fake.updates == []

    @pytest.mark.parametrize("result", [None, RuntimeError("db down")])
    def test_patch_failure(self, client, fake, result):
        fake.update_result = result
        resp = client.patch("/api/actions/act-1", headers=AUTH, json={"name": "x"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Failed to update action"

    def test_delete(self, client, fake):
        assert client.delete("/api/actions/act-1", headers=AUTH).json() == {"success": True}
        fake.deleted = False
        assert client.delete("/api/actions/act-1", headers=AUTH).status_code == 400


# =========================================================================
# Cron
# =========================================================================


class TestCron:

    def test_authorized(self, client, fake):
        resp = client.get("/api/cron/minute", headers={"Authorization": "Bearer s3cret"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert fake.ticks == 1

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "s3cret"}])
    def test_unauthorized_has_no_side_effects(self, client, fake, headers):
        assert client.get("/api/cron/minute", headers=headers).status_code == 401
        assert fake.ticks == 0

    def test_no_secret_configured(self, client, fake):
        fake.settings.cron_secret = None
        resp = client.get("/api/cron/minute", headers={"Authorization": "Bearer None"})
        assert resp.status_code == 401
        assert fake.ticks == 0

    def test_timeout(self, client, fake):
        fake.settings.limits.cron_timeout = 0.01
        fake.tick_delay = 1
        resp = client.get("/api/cron/minute", headers={"Authorization": "Bearer s3cret"})
        assert resp.status_code == 504
