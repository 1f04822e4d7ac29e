"""HTTP routes for conversation management and message history."""

import logging
from typing import TYPE_CHECKING, List, Optional

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from chat_relay.errors import ConversationNotFoundError, PersistenceError
from chat_relay.models import Conversation, Message

if TYPE_CHECKING:
    from chat_relay.services import RelayServices

logger = logging.getLogger(__name__)


class CreateConversationPayload(BaseModel):
    title: Optional[str] = None


class RenameConversationPayload(BaseModel):
    title: str = Field(..., min_length=1)


class ConversationDetail(Conversation):
    """A conversation together with its messages, oldest first."""
    messages: List[Message] = Field(default_factory=list)


def _not_found(conversation_id: str) -> HTTPException:
    return HTTPException(status.HTTP_404_NOT_FOUND, f"Conversation {conversation_id} not found")


def _storage_failure(e: PersistenceError) -> HTTPException:
    logger.error(f"[API] Storage error: {e}")
    return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage unavailable")


def build_http_router(services: "RelayServices") -> APIRouter:
    """Build the APIRouter for conversation CRUD and message paging."""
    from chat_relay.server import API_PREFIX

    router = APIRouter(prefix=f"{API_PREFIX}/conversations", tags=["Conversations"])
    store = services.store

    @router.get("", response_model=List[Conversation])
    async def list_conversations():
        try:
            return await store.list_conversations()
        except PersistenceError as e:
            raise _storage_failure(e)

    @router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
    async def create_conversation(payload: CreateConversationPayload):
        try:
            conversation = await store.create_conversation(title=payload.title)
        except PersistenceError as e:
            raise _storage_failure(e)
        logger.info(f"[API] Created new conversation {conversation.id}")
        return conversation

    @router.get("/{conversation_id}", response_model=ConversationDetail)
    async def get_conversation(conversation_id: str):
        try:
            conversation = await store.get_conversation(conversation_id)
            if conversation is None:
                logger.warning(f"[API] Conversation {conversation_id} not found")
                raise _not_found(conversation_id)
            messages = await store.list_messages(conversation_id)
        except PersistenceError as e:
            raise _storage_failure(e)
        return ConversationDetail(**conversation.model_dump(), messages=messages)

    @router.patch("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def rename_conversation(conversation_id: str, payload: RenameConversationPayload):
        try:
            await store.rename_conversation(conversation_id, payload.title)
        except ConversationNotFoundError:
            raise _not_found(conversation_id)
        except PersistenceError as e:
            raise _storage_failure(e)
        logger.info(f"[API] Renamed conversation {conversation_id}")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_conversation(conversation_id: str):
        try:
            await store.delete_conversation(conversation_id)
        except ConversationNotFoundError:
            raise _not_found(conversation_id)
        except PersistenceError as e:
            raise _storage_failure(e)
        logger.info(f"[API] Deleted conversation {conversation_id}")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.get("/{conversation_id}/messages", response_model=List[Message])
    async def list_messages(conversation_id: str, limit: int = Query(50, ge=1, le=1000)):
        try:
            if await store.get_conversation(conversation_id) is None:
                raise _not_found(conversation_id)
            messages = await store.list_messages(conversation_id, limit=limit)
        except PersistenceError as e:
            raise _storage_failure(e)
        logger.info(f"[API] Retrieved {len(messages)} messages for conversation {conversation_id}")
        return messages

    return router
