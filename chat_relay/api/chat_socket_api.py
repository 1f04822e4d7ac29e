"""WebSocket live channel.

WebSocketConnection: connection handle registered in the SessionRegistry
build_ws_router(): FastAPI APIRouter with the /ws endpoint
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Dict, Optional, Set
from uuid import uuid4

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from chat_relay import events
from chat_relay.models import StreamingTurn

if TYPE_CHECKING:
    from chat_relay.services import RelayServices

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """A browser connection. Owns the relay turns it started."""

    def __init__(self, ws: WebSocket, connection_id: Optional[str] = None):
        self.ws = ws
        self.connection_id = connection_id or uuid4().hex
        self._send_lock = asyncio.Lock()
        self._turn_tasks: Set[asyncio.Task] = set()

    async def send(self, event: Dict[str, Any]) -> None:
        """Send a JSON event. Events to a socket that is no longer open are dropped."""
        async with self._send_lock:
            if self.ws.client_state == WebSocketState.CONNECTED:
                await self.ws.send_json(event)

    def start_turn(self, coro: Awaitable[StreamingTurn]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._turn_tasks.add(task)
        task.add_done_callback(self._turn_tasks.discard)
        return task

    async def cancel_turns(self) -> None:
        """Cancel every turn still streaming for this connection and wait for them."""
        tasks = [t for t in self._turn_tasks if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"[WS] Cancelled {len(tasks)} in-flight turns of {self.connection_id}")


# ── WebSocket Router Builder ────────────────────────────────────────


def build_ws_router(services: "RelayServices"):
    """Build a FastAPI APIRouter with the WebSocket chat endpoint."""
    from fastapi import APIRouter

    from chat_relay.server import API_PREFIX

    router = APIRouter(prefix=API_PREFIX)

    @router.websocket("/ws")
    async def websocket_chat(ws: WebSocket):
        await ws.accept()
        connection = WebSocketConnection(ws)
        logger.info(f"[WS] Client connected: {connection.connection_id}")

        try:
            while True:
                raw = await ws.receive_text()
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    await connection.send(events.error("Invalid JSON", "InvalidJSON"))
                    continue
                if not isinstance(msg, dict):
                    await connection.send(events.error("Expected a JSON object", "InvalidMessage"))
                    continue

                try:
                    await _handle_client_message(services, connection, msg)
                except Exception as e:
                    logger.error(f"[WS] {msg.get('type')} error on {connection.connection_id}: {type(e).__name__}: {e}")
                    await connection.send(events.error("Failed to process message", type(e).__name__))

        except WebSocketDisconnect:
            logger.info(f"[WS] Client disconnected: {connection.connection_id}")
        except Exception as e:
            logger.error(f"[WS] Error on connection {connection.connection_id}: {type(e).__name__}: {e}")
        finally:
            services.registry.leave_all(connection)
            await connection.cancel_turns()

    return router


async def _handle_client_message(
    services: "RelayServices",
    connection: WebSocketConnection,
    msg: dict,
) -> None:
    """Dispatch a client WebSocket message to the appropriate handler."""
    msg_type = msg.get("type", "")
    conversation_id = msg.get("conversation_id") or ""
    if not isinstance(conversation_id, str):
        await connection.send(events.error("Conversation id must be a string", "InvalidMessage"))
        return

    if msg_type == "send_message":
        text = msg.get("text") or ""
        if not isinstance(text, str):
            await connection.send(events.error("Message text must be a string", "InvalidMessage"))
            return
        text = text.strip()
        if not conversation_id or not text:
            await connection.send(events.error("Message text and conversation id are required", "InvalidMessage"))
            return
        connection.start_turn(services.orchestrator.send_message(conversation_id, text))

    elif msg_type == "join_conversation":
        if not conversation_id:
            await connection.send(events.error("Conversation id is required", "InvalidMessage"))
            return
        await services.history_loader.join(conversation_id, connection)

    elif msg_type == "leave_conversation":
        if conversation_id:
            services.history_loader.leave(conversation_id, connection)

    elif msg_type == "heartbeat":
        await connection.send({"type": events.HEARTBEAT_ACK})

    else:
        logger.warning(f"[WS] Unknown message type: {msg_type}")
