"""Test configuration and fixtures."""
import asyncio
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

import pytest

from chat_relay.api.session_registry import SessionRegistry
from chat_relay.errors import InferenceError
from chat_relay.inference import InferenceChunk, InferenceClient
from chat_relay.models import Message
from chat_relay.relay_orchestrator import RelayOrchestrator
from chat_relay.storage import MemoryConversationStore


class FakeConnection:
    """Records every event it is sent."""

    def __init__(self, connection_id: Optional[str] = None):
        self.connection_id = connection_id or uuid4().hex
        self.events: List[Dict[str, Any]] = []

    async def send(self, event: Dict[str, Any]) -> None:
        self.events.append(event)

    def types(self) -> List[str]:
        return [e["type"] for e in self.events]

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["type"] == event_type]


class FailingConnection(FakeConnection):
    """A connection whose transport is broken."""

    async def send(self, event: Dict[str, Any]) -> None:
        raise ConnectionResetError("peer went away")


class StalledConnection(FakeConnection):
    """A connection that never completes a send."""

    async def send(self, event: Dict[str, Any]) -> None:
        await asyncio.sleep(3600)


class ScriptedInferenceClient(InferenceClient):
    """Inference client that replays a fixed list of fragments.

    An ``InferenceError`` instance in the script is yielded as the terminal
    error chunk. ``gate`` can hold the stream after a given fragment count.
    """

    def __init__(self, script: Sequence[Any] = (), history_window: int = 20):
        super().__init__("scripted", "You are a test assistant.", history_window)
        self.script = list(script)
        self.calls: List[Dict[str, Any]] = []
        self.gate: Optional[asyncio.Event] = None
        self.gate_after: int = 0
        self.closed = False

    async def astream(self, history: Sequence[Message], prompt: str):
        self.calls.append({"history": list(history), "prompt": prompt})
        for index, item in enumerate(self.script):
            if self.gate is not None and index == self.gate_after:
                await self.gate.wait()
            if isinstance(item, InferenceError):
                yield InferenceChunk.from_error(item, index)
                return
            yield InferenceChunk(content=item, index=index)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def store():
    return MemoryConversationStore()


@pytest.fixture
def registry():
    return SessionRegistry(send_timeout=0.2)


@pytest.fixture
def inference():
    return ScriptedInferenceClient(["Hello", " ", "world"])


@pytest.fixture
def orchestrator(store, registry, inference):
    return RelayOrchestrator(store=store, registry=registry, inference_client=inference, history_window=20)
