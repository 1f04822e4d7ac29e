"""Exception types shared by the relay, the inference client and the stores."""
from typing import Optional


class RelayError(Exception):
    """Base class for all chat-relay errors."""


class InferenceError(RelayError):
    """Raised (or reported on a terminal chunk) when the inference backend fails."""


class BackendUnreachable(InferenceError):
    """The backend could not be reached or answered with a non-success status."""
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class BackendProtocolError(InferenceError):
    """A line of the backend's event stream did not have the expected shape."""


class PersistenceError(RelayError):
    """The conversation store rejected a read or write."""


class ConversationNotFoundError(PersistenceError):
    """The referenced conversation does not exist."""
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")
