"""Joins connections to conversations and sends them the stored history."""

import logging

from chat_relay import events
from chat_relay.api.session_registry import Connection, SessionRegistry
from chat_relay.storage import ConversationStore

logger = logging.getLogger(__name__)


class HistoryLoader:
    """Handles join/leave requests for live sessions."""

    def __init__(self, *, store: ConversationStore, registry: SessionRegistry):
        self.store = store
        self.registry = registry

    async def join(self, conversation_id: str, connection: Connection) -> bool:
        """Subscribe ``connection`` and send it the conversation's history.

        History goes to the joining connection only. A repeated join from an
        already subscribed connection is a no-op.

        Returns:
            True if the connection was newly subscribed
        """
        if not self.registry.join(conversation_id, connection):
            logger.debug(f"[HISTORY] Connection {connection.connection_id} already in {conversation_id}")
            return False

        try:
            messages = await self.store.list_messages(conversation_id)
        except Exception as e:
            logger.error(f"[HISTORY] Failed to load history for conversation {conversation_id}: {e}", exc_info=True)
            await self.registry.send_to(
                connection,
                events.error("Failed to load conversation history.", f"{type(e).__name__}: {e}", conversation_id),
            )
            return True

        await self.registry.send_to(connection, events.history_loaded(conversation_id, messages))
        logger.info(f"[HISTORY] Loaded {len(messages)} messages for conversation {conversation_id}")
        return True

    def leave(self, conversation_id: str, connection: Connection) -> bool:
        return self.registry.leave(conversation_id, connection)
