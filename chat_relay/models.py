"""Models for conversations, messages and in-flight assistant turns."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class Role(str, Enum):
    """Role of a persisted message."""
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single persisted message in a conversation. Never updated once stored."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    conversation_id: str
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Opaque client-defined data")


class Conversation(BaseModel):
    """A named thread of messages."""
    id: str = Field(default_factory=new_id)
    title: str = "New Chat"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    user_id: Optional[str] = None

    def touch(self, when: Optional[datetime] = None) -> None:
        """Move updated_at forward, never before created_at."""
        when = when or utc_now()
        self.updated_at = max(when, self.created_at)


class TurnStatus(str, Enum):
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"


class RelayState(str, Enum):
    """States a relay invocation passes through."""
    IDLE = "idle"
    USER_MESSAGE_PERSISTED = "user_message_persisted"
    THINKING = "thinking"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


class StreamingTurn(BaseModel):
    """The assistant response being streamed for one inbound user message.

    Lives only for the duration of a relay invocation. The finalized assistant
    message reuses ``id`` so clients can match it to the streamed chunks.
    """
    id: str = Field(default_factory=new_id)
    conversation_id: str
    text: str = ""
    status: TurnStatus = TurnStatus.ACTIVE
    state: RelayState = RelayState.IDLE
    user_message: Optional[Message] = None
    assistant_message: Optional[Message] = None
    error: Optional[str] = None

    def append(self, fragment: str) -> None:
        self.text += fragment

    def complete(self, message: Message) -> None:
        self.assistant_message = message
        self.status = TurnStatus.COMPLETE
        self.state = RelayState.COMPLETED

    def fail(self, error: str) -> None:
        self.error = error
        self.status = TurnStatus.FAILED
        self.state = RelayState.FAILED
