"""Relay orchestration for one inbound user message.

Persists the user turn, streams the model's answer to every connection
subscribed to the conversation and persists the finished assistant turn.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import List

from chat_relay import events
from chat_relay.api.session_registry import SessionRegistry
from chat_relay.errors import PersistenceError
from chat_relay.inference import InferenceClient
from chat_relay.models import Message, RelayState, Role, StreamingTurn
from chat_relay.storage import ConversationStore

logger = logging.getLogger(__name__)


class RelayOrchestrator:
    """Runs the send_message state machine.

    Every invocation is independent: failures are contained to the invocation
    that hit them and reported to the conversation's subscribers as an
    ``error`` event followed by ``ai_thinking(false)``.
    """

    def __init__(
        self,
        *,
        store: ConversationStore,
        registry: SessionRegistry,
        inference_client: InferenceClient,
        history_window: int = 20,
    ):
        self.store = store
        self.registry = registry
        self.inference_client = inference_client
        self.history_window = history_window

    async def send_message(self, conversation_id: str, text: str) -> StreamingTurn:
        """Relay one user message and the streamed assistant answer.

        Args:
            conversation_id: Conversation the message belongs to
            text: The user's message

        Returns:
            The turn, with its final status and, on success, the stored
            assistant message

        Raises:
            asyncio.CancelledError: if the invocation was cancelled. Nothing
                is persisted or broadcast after the cancellation point.
        """
        turn = StreamingTurn(conversation_id=conversation_id)
        logger.info(f"[RELAY] Message for conversation {conversation_id} ({len(text)} chars), turn {turn.id}")

        try:
            await self._run(turn, text)
        except asyncio.CancelledError:
            logger.info(f"[RELAY] Turn {turn.id} cancelled during {turn.state.value}, {len(turn.text)} chars discarded")
            turn.fail("cancelled")
            raise
        except Exception as e:
            logger.error(
                f"[RELAY] Error processing message in conversation {conversation_id} "
                f"during {turn.state.value}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            details = f"{type(e).__name__}: {e}"
            turn.fail(details)
            await self._notify_failure(conversation_id, details)

        return turn

    async def _run(self, turn: StreamingTurn, text: str) -> None:
        conversation_id = turn.conversation_id

        user_message = await self._persist(Message(conversation_id=conversation_id, role=Role.USER, content=text))
        turn.user_message = user_message
        turn.state = RelayState.USER_MESSAGE_PERSISTED

        await self.registry.broadcast(conversation_id, events.message_received(user_message))
        await self.registry.broadcast(conversation_id, events.ai_thinking(conversation_id, True))
        turn.state = RelayState.THINKING

        await self.registry.broadcast(conversation_id, events.stream_start(turn.id, conversation_id))
        history = await self._load_history(conversation_id, exclude_id=user_message.id)
        turn.state = RelayState.STREAMING

        async with aclosing(self.inference_client.astream(history, text)) as stream:
            async for chunk in stream:
                if chunk.is_error:
                    details = chunk.describe_error()
                    logger.error(f"[RELAY] Inference failed for turn {turn.id}: {details}")
                    turn.fail(details)
                    await self._notify_failure(conversation_id, details)
                    return
                if not chunk.content:
                    continue
                turn.append(chunk.content)
                await self.registry.broadcast(
                    conversation_id, events.stream_chunk(turn.id, conversation_id, chunk.content)
                )

        turn.state = RelayState.FINALIZING
        assistant_message = await self._persist(
            Message(id=turn.id, conversation_id=conversation_id, role=Role.ASSISTANT, content=turn.text)
        )
        turn.complete(assistant_message)

        await self.registry.broadcast(conversation_id, events.stream_complete(assistant_message))
        await self.registry.broadcast(conversation_id, events.ai_thinking(conversation_id, False))

        logger.info(f"[RELAY] AI response completed for conversation {conversation_id}. Response length: {len(turn.text)}")

    async def _persist(self, message: Message) -> Message:
        """Store a message, then bump the conversation's updated_at (best effort)."""
        try:
            saved = await self.store.create_message(message)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save {message.role.value} message: {e}") from e

        try:
            await self.store.touch_conversation_updated_at(message.conversation_id)
        except Exception as e:
            logger.warning(f"[RELAY] Could not update timestamp of conversation {message.conversation_id}: {e}")

        return saved

    async def _load_history(self, conversation_id: str, exclude_id: str) -> List[Message]:
        """Most recent history messages, oldest first, without the current prompt."""
        if self.history_window <= 0:
            return []
        try:
            messages = await self.store.list_messages(conversation_id, limit=self.history_window + 1)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to load conversation history: {e}") from e
        history = [m for m in messages if m.id != exclude_id]
        return history[-self.history_window:]

    async def _notify_failure(self, conversation_id: str, details: str) -> None:
        try:
            await self.registry.broadcast(
                conversation_id, events.error(events.GENERIC_ERROR_MESSAGE, details, conversation_id)
            )
            await self.registry.broadcast(conversation_id, events.ai_thinking(conversation_id, False))
        except Exception as e:
            logger.error(f"[RELAY] Could not report failure to conversation {conversation_id}: {e}", exc_info=True)
