"""Server-pushed events of the live channel.

Every event is a JSON object with a ``type`` field. Builders return plain
dicts ready for ``WebSocket.send_json``.
"""
from typing import Any, Dict, List

from .models import Message, Role

HISTORY_LOADED = "history_loaded"
MESSAGE_RECEIVED = "message_received"
AI_THINKING = "ai_thinking"
STREAM_START = "stream_start"
STREAM_CHUNK = "stream_chunk"
STREAM_COMPLETE = "stream_complete"
ERROR = "error"
HEARTBEAT_ACK = "heartbeat_ack"

GENERIC_ERROR_MESSAGE = "An error occurred while processing your message."


def history_loaded(conversation_id: str, messages: List[Message]) -> Dict[str, Any]:
    return {
        "type": HISTORY_LOADED,
        "conversation_id": conversation_id,
        "messages": [m.model_dump(mode="json") for m in messages],
    }


def message_received(message: Message) -> Dict[str, Any]:
    return {"type": MESSAGE_RECEIVED, "message": message.model_dump(mode="json")}


def ai_thinking(conversation_id: str, thinking: bool) -> Dict[str, Any]:
    return {"type": AI_THINKING, "conversation_id": conversation_id, "thinking": thinking}


def stream_start(turn_id: str, conversation_id: str) -> Dict[str, Any]:
    return {
        "type": STREAM_START,
        "id": turn_id,
        "conversation_id": conversation_id,
        "role": Role.ASSISTANT.value,
    }


def stream_chunk(turn_id: str, conversation_id: str, content: str) -> Dict[str, Any]:
    return {"type": STREAM_CHUNK, "id": turn_id, "conversation_id": conversation_id, "content": content}


def stream_complete(message: Message) -> Dict[str, Any]:
    return {"type": STREAM_COMPLETE, "message": message.model_dump(mode="json")}


def error(message: str, details: str = "", conversation_id: str | None = None) -> Dict[str, Any]:
    event = {"type": ERROR, "message": message, "details": details}
    if conversation_id is not None:
        event["conversation_id"] = conversation_id
    return event
