"""End-to-end tests of the WebSocket live channel and the HTTP routes."""
import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from chat_relay import events
from chat_relay.config import RelayConfig
from chat_relay.errors import PersistenceError
from chat_relay.models import Message, Role, utc_now
from chat_relay.server import API_CONVERSATIONS, API_WS
from chat_relay.services import RelayServices
from chat_relay.standalone import create_app
from chat_relay.storage import MemoryConversationStore

from tests.conftest import ScriptedInferenceClient


@pytest.fixture
def services():
    return RelayServices.create(
        RelayConfig(),
        store=MemoryConversationStore(),
        inference_client=ScriptedInferenceClient(["Hi", " there"]),
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


def receive_until(ws, event_type):
    received = []
    while True:
        event = ws.receive_json()
        received.append(event)
        if event["type"] == event_type:
            return received


def create_conversation(client, title=None):
    response = client.post(API_CONVERSATIONS, json={"title": title} if title else {})
    assert response.status_code == 201
    return response.json()


# ── WebSocket ──────────────────────────────────────────────────────


def test_heartbeat(client):
    with client.websocket_connect(API_WS) as ws:
        ws.send_json({"type": "heartbeat"})
        assert ws.receive_json() == {"type": events.HEARTBEAT_ACK}


def test_invalid_json_is_reported(client):
    with client.websocket_connect(API_WS) as ws:
        ws.send_text("{nope")
        event = ws.receive_json()
        assert event["type"] == events.ERROR
        assert event["message"] == "Invalid JSON"

        ws.send_json(["not", "an", "object"])
        assert ws.receive_json()["type"] == events.ERROR


def test_send_message_requires_text(client):
    conversation = create_conversation(client)
    with client.websocket_connect(API_WS) as ws:
        ws.send_json({"type": "send_message", "conversation_id": conversation["id"], "text": "   "})
        event = ws.receive_json()
        assert event["type"] == events.ERROR
        assert event["details"] == "InvalidMessage"


def test_non_string_fields_are_rejected(client):
    with client.websocket_connect(API_WS) as ws:
        ws.send_json({"type": "send_message", "conversation_id": "c1", "text": 5})
        event = ws.receive_json()
        assert event["type"] == events.ERROR
        assert event["details"] == "InvalidMessage"

        ws.send_json({"type": "join_conversation", "conversation_id": ["a"]})
        event = ws.receive_json()
        assert event["type"] == events.ERROR
        assert event["details"] == "InvalidMessage"

        ws.send_json({"type": "heartbeat"})
        assert ws.receive_json() == {"type": events.HEARTBEAT_ACK}


def test_handler_failure_keeps_connection_open(client, services, monkeypatch):
    async def broken_join(conversation_id, connection):
        raise RuntimeError("registry exploded")

    monkeypatch.setattr(services.history_loader, "join", broken_join)
    with client.websocket_connect(API_WS) as ws:
        ws.send_json({"type": "join_conversation", "conversation_id": "c1"})
        event = ws.receive_json()
        assert event["type"] == events.ERROR
        assert event["details"] == "RuntimeError"

        ws.send_json({"type": "heartbeat"})
        assert ws.receive_json() == {"type": events.HEARTBEAT_ACK}


def test_disconnect_cancels_in_flight_turn(client, services):
    conversation = create_conversation(client)
    services.inference_client.gate = asyncio.Event()
    services.inference_client.gate_after = 1
    join = {"type": "join_conversation", "conversation_id": conversation["id"]}

    with client.websocket_connect(API_WS) as watcher:
        watcher.send_json(join)
        assert watcher.receive_json()["type"] == events.HISTORY_LOADED

        with client.websocket_connect(API_WS) as sender:
            sender.send_json(join)
            assert sender.receive_json()["type"] == events.HISTORY_LOADED
            sender.send_json({"type": "send_message", "conversation_id": conversation["id"], "text": "hello"})
            watched = receive_until(watcher, events.STREAM_CHUNK)

        watcher.send_json({"type": "heartbeat"})
        watched.append(watcher.receive_json())

    assert [e["type"] for e in watched] == [
        events.MESSAGE_RECEIVED,
        events.AI_THINKING,
        events.STREAM_START,
        events.STREAM_CHUNK,
        events.HEARTBEAT_ACK,
    ]
    response = client.get(f"{API_CONVERSATIONS}/{conversation['id']}/messages")
    assert [(m["role"], m["content"]) for m in response.json()] == [("user", "hello")]


def test_join_then_send_streams_answer(client, services):
    conversation = create_conversation(client)
    with client.websocket_connect(API_WS) as ws:
        ws.send_json({"type": "join_conversation", "conversation_id": conversation["id"]})
        history = ws.receive_json()
        assert history == {"type": events.HISTORY_LOADED, "conversation_id": conversation["id"], "messages": []}

        ws.send_json({"type": "send_message", "conversation_id": conversation["id"], "text": "hello"})
        received = receive_until(ws, events.STREAM_COMPLETE)
        received.append(ws.receive_json())

    assert [e["type"] for e in received] == [
        events.MESSAGE_RECEIVED,
        events.AI_THINKING,
        events.STREAM_START,
        events.STREAM_CHUNK,
        events.STREAM_CHUNK,
        events.STREAM_COMPLETE,
        events.AI_THINKING,
    ]
    assert received[0]["message"]["content"] == "hello"
    assert received[5]["message"]["content"] == "Hi there"
    assert received[6]["thinking"] is False

    response = client.get(f"{API_CONVERSATIONS}/{conversation['id']}/messages")
    assert [m["content"] for m in response.json()] == ["hello", "Hi there"]


def test_second_connection_receives_stream(client):
    conversation = create_conversation(client)
    join = {"type": "join_conversation", "conversation_id": conversation["id"]}
    with client.websocket_connect(API_WS) as sender, client.websocket_connect(API_WS) as watcher:
        sender.send_json(join)
        assert sender.receive_json()["type"] == events.HISTORY_LOADED
        watcher.send_json(join)
        assert watcher.receive_json()["type"] == events.HISTORY_LOADED

        sender.send_json({"type": "send_message", "conversation_id": conversation["id"], "text": "hello"})
        sent = receive_until(sender, events.STREAM_COMPLETE)
        watched = receive_until(watcher, events.STREAM_COMPLETE)

    chunks = [e["content"] for e in watched if e["type"] == events.STREAM_CHUNK]
    assert chunks == ["Hi", " there"]
    assert [e["type"] for e in sent] == [e["type"] for e in watched]


def test_join_twice_sends_history_once(client):
    conversation = create_conversation(client)
    join = {"type": "join_conversation", "conversation_id": conversation["id"]}
    with client.websocket_connect(API_WS) as ws:
        ws.send_json(join)
        ws.send_json(join)
        ws.send_json({"type": "heartbeat"})
        assert ws.receive_json()["type"] == events.HISTORY_LOADED
        assert ws.receive_json()["type"] == events.HEARTBEAT_ACK


def test_history_loaded_on_join(client, services):
    conversation = create_conversation(client)
    asyncio.run(services.store.create_message(
        Message(conversation_id=conversation["id"], role=Role.USER, content="stored earlier")
    ))
    with client.websocket_connect(API_WS) as ws:
        ws.send_json({"type": "join_conversation", "conversation_id": conversation["id"]})
        event = ws.receive_json()

    assert [m["content"] for m in event["messages"]] == ["stored earlier"]


def test_disconnect_clears_membership(client, services):
    conversation = create_conversation(client)
    with client.websocket_connect(API_WS) as ws:
        ws.send_json({"type": "join_conversation", "conversation_id": conversation["id"]})
        ws.receive_json()
        assert client.get("/health").json()["live_sessions"] == 1

    assert services.registry.active_count == 0


# ── HTTP ───────────────────────────────────────────────────────────


def test_create_and_list_conversations(client):
    first = create_conversation(client)
    second = create_conversation(client, "Holiday plans")

    assert first["title"] == "New Chat"
    assert second["title"] == "Holiday plans"
    ids = [c["id"] for c in client.get(API_CONVERSATIONS).json()]
    assert set(ids) == {first["id"], second["id"]}


def test_get_conversation_with_messages(client, services):
    conversation = create_conversation(client)
    asyncio.run(services.store.create_message(
        Message(conversation_id=conversation["id"], role=Role.USER, content="hi")
    ))

    detail = client.get(f"{API_CONVERSATIONS}/{conversation['id']}").json()

    assert detail["id"] == conversation["id"]
    assert [m["content"] for m in detail["messages"]] == ["hi"]


def test_rename_and_delete(client):
    conversation = create_conversation(client)
    url = f"{API_CONVERSATIONS}/{conversation['id']}"

    assert client.patch(url, json={"title": "Renamed"}).status_code == 204
    assert client.get(url).json()["title"] == "Renamed"
    assert client.patch(url, json={"title": ""}).status_code == 422

    assert client.delete(url).status_code == 204
    assert client.get(url).status_code == 404
    assert client.delete(url).status_code == 404
    assert client.patch(url, json={"title": "x"}).status_code == 404


def test_message_paging_returns_newest_in_order(client, services):
    conversation = create_conversation(client)
    base = utc_now()
    for i in range(5):
        asyncio.run(services.store.create_message(Message(
            conversation_id=conversation["id"], role=Role.USER, content=f"m{i}", timestamp=base + timedelta(seconds=i),
        )))

    response = client.get(f"{API_CONVERSATIONS}/{conversation['id']}/messages", params={"limit": 2})

    assert [m["content"] for m in response.json()] == ["m3", "m4"]
    assert client.get(f"{API_CONVERSATIONS}/missing/messages").status_code == 404
    assert client.get(f"{API_CONVERSATIONS}/{conversation['id']}/messages", params={"limit": 0}).status_code == 422


class UnavailableStore(MemoryConversationStore):
    async def list_conversations(self):
        raise PersistenceError("connection pool exhausted")


def test_storage_failure_maps_to_503():
    services = RelayServices.create(
        RelayConfig(), store=UnavailableStore(), inference_client=ScriptedInferenceClient()
    )
    with TestClient(create_app(services)) as client:
        response = client.get(API_CONVERSATIONS)

    assert response.status_code == 503
    assert response.json()["detail"] == "Storage unavailable"


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "live_sessions": 0}
