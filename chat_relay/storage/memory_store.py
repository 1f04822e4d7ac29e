import logging
import threading
from typing import Dict, List, Optional

from chat_relay.errors import ConversationNotFoundError
from chat_relay.models import Conversation, Message, utc_now

from .conversation_store import ConversationStore

logger = logging.getLogger(__name__)


class MemoryConversationStore(ConversationStore):
    """Conversation store kept in process memory. Contents are lost on restart."""

    def __init__(self):
        self._lock = threading.Lock()
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[Message]] = {}

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def create_conversation(self, title: Optional[str] = None, user_id: Optional[str] = None) -> Conversation:
        conversation = Conversation(title=title or "New Chat", user_id=user_id)
        with self._lock:
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
        logger.debug(f"[STORE] Created conversation {conversation.id} ({conversation.title!r})")
        return conversation.model_copy()

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            return conversation.model_copy() if conversation else None

    async def list_conversations(self) -> List[Conversation]:
        with self._lock:
            conversations = [c.model_copy() for c in self._conversations.values()]
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def rename_conversation(self, conversation_id: str, title: str) -> Conversation:
        with self._lock:
            conversation = self._require(conversation_id)
            conversation.title = title
            conversation.touch()
            return conversation.model_copy()

    async def delete_conversation(self, conversation_id: str) -> None:
        with self._lock:
            self._require(conversation_id)
            del self._conversations[conversation_id]
            removed = self._messages.pop(conversation_id, [])
        logger.debug(f"[STORE] Deleted conversation {conversation_id} with {len(removed)} messages")

    async def create_message(self, message: Message) -> Message:
        with self._lock:
            self._require(message.conversation_id)
            self._messages[message.conversation_id].append(message)
        logger.debug(f"[STORE] Saved message {message.id} for conversation {message.conversation_id}, role: {message.role.value}")
        return message

    async def list_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[Message]:
        with self._lock:
            messages = sorted(self._messages.get(conversation_id, []), key=lambda m: m.timestamp)
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    async def touch_conversation_updated_at(self, conversation_id: str) -> None:
        with self._lock:
            self._require(conversation_id).touch(utc_now())
