import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from chat_relay.errors import ConversationNotFoundError, PersistenceError
from chat_relay.models import Conversation, Message, utc_now

from .conversation_store import ConversationStore

logger = logging.getLogger(__name__)


def _conversation_from_doc(doc: Dict[str, Any]) -> Conversation:
    return Conversation(
        id=doc["_id"],
        title=doc.get("title", "New Chat"),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
        user_id=doc.get("user_id"),
    )


def _message_from_doc(doc: Dict[str, Any]) -> Message:
    return Message(
        id=doc["_id"],
        conversation_id=doc["conversation_id"],
        role=doc["role"],
        content=doc["content"],
        timestamp=doc["timestamp"],
        metadata=doc.get("metadata"),
    )


class MongoDBConversationStore(ConversationStore):
    """Conversation store backed by MongoDB.

    Conversations and messages live in two collections keyed by their string
    ids. Messages reference their conversation through ``conversation_id``.
    """
    def __init__(
        self,
        *,
        mongo_uri: str,
        mongo_db: str,
        conversations_collection: str = "conversations",
        messages_collection: str = "messages",
    ):
        if not mongo_uri or not mongo_db:
            raise ValueError("MongoDB URI and database are required")
        self.mongo_uri = mongo_uri
        self.mongo_db = mongo_db
        self._client = AsyncIOMotorClient(mongo_uri, tz_aware=True)
        self._conversations = self._client[mongo_db][conversations_collection]
        self._messages = self._client[mongo_db][messages_collection]

    async def ensure_indexes(self) -> None:
        """Create the indexes used by history queries."""
        try:
            await self._messages.create_index([("conversation_id", ASCENDING), ("timestamp", ASCENDING)])
            await self._conversations.create_index([("updated_at", DESCENDING)])
        except PyMongoError as e:
            raise PersistenceError(f"Failed to create MongoDB indexes: {e}") from e

    async def create_conversation(self, title: Optional[str] = None, user_id: Optional[str] = None) -> Conversation:
        conversation = Conversation(title=title or "New Chat", user_id=user_id)
        doc = conversation.model_dump(exclude={"id"})
        doc["_id"] = conversation.id
        try:
            await self._conversations.insert_one(doc)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to create conversation in MongoDB: {e}") from e
        logger.debug(f"[STORE] Created conversation {conversation.id} ({conversation.title!r})")
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        try:
            doc = await self._conversations.find_one({"_id": conversation_id})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to load conversation from MongoDB: {e}") from e
        return _conversation_from_doc(doc) if doc else None

    async def list_conversations(self) -> List[Conversation]:
        try:
            docs = await self._conversations.find().sort("updated_at", DESCENDING).to_list(length=None)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to list conversations from MongoDB: {e}") from e
        return [_conversation_from_doc(d) for d in docs]

    async def rename_conversation(self, conversation_id: str, title: str) -> Conversation:
        try:
            doc = await self._conversations.find_one_and_update(
                {"_id": conversation_id},
                {"$set": {"title": title, "updated_at": utc_now()}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise PersistenceError(f"Failed to rename conversation in MongoDB: {e}") from e
        if doc is None:
            raise ConversationNotFoundError(conversation_id)
        return _conversation_from_doc(doc)

    async def delete_conversation(self, conversation_id: str) -> None:
        try:
            # messages before the conversation: a partial failure must not orphan them
            removed = await self._messages.delete_many({"conversation_id": conversation_id})
            result = await self._conversations.delete_one({"_id": conversation_id})
            if result.deleted_count == 0:
                raise ConversationNotFoundError(conversation_id)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to delete conversation from MongoDB: {e}") from e
        logger.debug(f"[STORE] Deleted conversation {conversation_id} with {removed.deleted_count} messages")

    async def create_message(self, message: Message) -> Message:
        doc = message.model_dump(exclude={"id"})
        doc["_id"] = message.id
        doc["role"] = message.role.value
        try:
            exists = await self._conversations.find_one({"_id": message.conversation_id}, {"_id": 1})
            if exists is None:
                raise ConversationNotFoundError(message.conversation_id)
            await self._messages.insert_one(doc)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to save message to MongoDB: {e}") from e
        logger.debug(f"[STORE] Saved message {message.id} for conversation {message.conversation_id}, role: {message.role.value}")
        return message

    async def list_messages(self, conversation_id: str, limit: Optional[int] = None) -> List[Message]:
        if limit is not None and limit <= 0:
            return []
        try:
            cursor = self._messages.find({"conversation_id": conversation_id})
            if limit is None:
                docs = await cursor.sort("timestamp", ASCENDING).to_list(length=None)
            else:
                # newest N, then back to chronological order
                docs = await cursor.sort("timestamp", DESCENDING).limit(limit).to_list(length=None)
                docs.reverse()
        except PyMongoError as e:
            raise PersistenceError(f"Failed to load messages from MongoDB: {e}") from e
        return [_message_from_doc(d) for d in docs]

    async def touch_conversation_updated_at(self, conversation_id: str) -> None:
        try:
            result = await self._conversations.update_one(
                {"_id": conversation_id},
                {"$max": {"updated_at": utc_now()}},
            )
        except PyMongoError as e:
            raise PersistenceError(f"Failed to update conversation timestamp in MongoDB: {e}") from e
        if result.matched_count == 0:
            raise ConversationNotFoundError(conversation_id)

    async def close(self) -> None:
        self._client.close()
