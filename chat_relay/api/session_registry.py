"""Live session membership: conversation_id → subscribed connections."""

import asyncio
import logging
import threading
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """A live client connection that can receive events."""
    connection_id: str

    async def send(self, event: Dict[str, Any]) -> None:
        ...


class SessionRegistry:
    """Maps conversation_id → connections. Thread-safe via a lock.

    Owned by the application and passed to the components that need it.
    Membership is in-memory only and starts empty on every process start.
    """

    def __init__(self, send_timeout: float = 5.0):
        self.send_timeout = send_timeout
        self._lock = threading.Lock()
        self._sessions: Dict[str, Dict[str, Connection]] = {}

    def join(self, conversation_id: str, connection: Connection) -> bool:
        """Subscribe a connection. Returns False if it was already subscribed."""
        with self._lock:
            members = self._sessions.setdefault(conversation_id, {})
            if connection.connection_id in members:
                return False
            members[connection.connection_id] = connection
        logger.info(f"[REGISTRY] Connection {connection.connection_id} joined conversation {conversation_id}")
        return True

    def leave(self, conversation_id: str, connection: Connection) -> bool:
        """Unsubscribe a connection. Returns False if it was not subscribed."""
        with self._lock:
            members = self._sessions.get(conversation_id)
            if not members or members.pop(connection.connection_id, None) is None:
                return False
            if not members:
                del self._sessions[conversation_id]
        logger.info(f"[REGISTRY] Connection {connection.connection_id} left conversation {conversation_id}")
        return True

    def leave_all(self, connection: Connection) -> List[str]:
        """Remove a connection from every conversation. Returns the ids it left."""
        left = []
        with self._lock:
            for conversation_id in list(self._sessions):
                members = self._sessions[conversation_id]
                if members.pop(connection.connection_id, None) is not None:
                    left.append(conversation_id)
                    if not members:
                        del self._sessions[conversation_id]
        if left:
            logger.info(f"[REGISTRY] Connection {connection.connection_id} removed from {len(left)} conversations")
        return left

    def members(self, conversation_id: str) -> List[Connection]:
        with self._lock:
            return list(self._sessions.get(conversation_id, {}).values())

    def is_member(self, conversation_id: str, connection: Connection) -> bool:
        with self._lock:
            return connection.connection_id in self._sessions.get(conversation_id, {})

    @property
    def active_count(self) -> int:
        """Number of conversations with at least one subscriber."""
        with self._lock:
            return len(self._sessions)

    async def send_to(self, connection: Connection, event: Dict[str, Any]) -> bool:
        """Deliver one event to one connection. Failures are logged, not raised.

        A connection whose send times out is removed from every conversation:
        the interrupted frame leaves its socket unusable.
        """
        try:
            await asyncio.wait_for(connection.send(event), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"[REGISTRY] Send of {event.get('type')} to {connection.connection_id} timed out, evicting")
            self.leave_all(connection)
        except Exception as e:
            logger.debug(f"[REGISTRY] Send of {event.get('type')} to {connection.connection_id} failed: {type(e).__name__}: {e}")
        return False

    async def broadcast(self, conversation_id: str, event: Dict[str, Any]) -> int:
        """Deliver an event to every current subscriber of a conversation.

        Members are snapshotted at call time and served one after another,
        so a single caller's events arrive in order. A failing subscriber is
        skipped and never retried.

        Returns:
            Number of connections the event was delivered to
        """
        delivered = 0
        for connection in self.members(conversation_id):
            if await self.send_to(connection, event):
                delivered += 1
        return delivered
