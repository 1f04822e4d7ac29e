"""chat-relay: real-time relay between chat clients and a local LLM server."""

from chat_relay.models import Conversation, Message, Role, RelayState, StreamingTurn, TurnStatus
from chat_relay.errors import (
    RelayError, InferenceError, BackendUnreachable, BackendProtocolError,
    PersistenceError, ConversationNotFoundError,
)
from chat_relay.config import RelayConfig
from chat_relay.api.session_registry import SessionRegistry
from chat_relay.relay_orchestrator import RelayOrchestrator
from chat_relay.history_loader import HistoryLoader
from chat_relay.services import RelayServices

__all__ = [
    "Conversation",
    "Message",
    "Role",
    "RelayState",
    "StreamingTurn",
    "TurnStatus",
    "RelayError",
    "InferenceError",
    "BackendUnreachable",
    "BackendProtocolError",
    "PersistenceError",
    "ConversationNotFoundError",
    "RelayConfig",
    "SessionRegistry",
    "RelayOrchestrator",
    "HistoryLoader",
    "RelayServices",
    "create_app",
]


def __getattr__(name: str):
    if name == "create_app":
        from chat_relay.standalone import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
