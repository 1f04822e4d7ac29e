from abc import ABC, abstractmethod
from typing import List, Optional

from chat_relay.models import Conversation, Message


class ConversationStore(ABC):
    """Base class for conversation and message persistence.

    Implementations raise ``ConversationNotFoundError`` for a missing
    conversation and ``PersistenceError`` for any other storage fault.
    """

    @abstractmethod
    async def create_conversation(self, title: Optional[str] = None, user_id: Optional[str] = None) -> Conversation:
        """Create and return a new conversation."""
        raise NotImplementedError("Subclasses must implement create_conversation")

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Return the conversation or None if it does not exist."""
        raise NotImplementedError("Subclasses must implement get_conversation")

    @abstractmethod
    async def list_conversations(self) -> List[Conversation]:
        """All conversations, most recently updated first."""
        raise NotImplementedError("Subclasses must implement list_conversations")

    @abstractmethod
    async def rename_conversation(self, conversation_id: str, title: str) -> Conversation:
        """Change the title and bump updated_at."""
        raise NotImplementedError("Subclasses must implement rename_conversation")

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete the conversation together with all of its messages."""
        raise NotImplementedError("Subclasses must implement delete_conversation")

    @abstractmethod
    async def create_message(self, message: Message) -> Message:
        """Persist a message. The parent conversation must exist."""
        raise NotImplementedError("Subclasses must implement create_message")

    @abstractmethod
    async def list_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[Message]:
        """The most recent ``limit`` messages (all if None), oldest first."""
        raise NotImplementedError("Subclasses must implement list_messages")

    @abstractmethod
    async def touch_conversation_updated_at(self, conversation_id: str) -> None:
        """Set the conversation's updated_at to now."""
        raise NotImplementedError("Subclasses must implement touch_conversation_updated_at")

    async def close(self) -> None:
        """Release connections. The default implementation does nothing."""
        pass
