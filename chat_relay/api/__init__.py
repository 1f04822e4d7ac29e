"""Live channel and HTTP API.

Provides SessionRegistry, WebSocketConnection and the router builders.
The combined router is returned by chat_relay.server.get_router().
"""

from .session_registry import Connection, SessionRegistry
from .chat_socket_api import WebSocketConnection, build_ws_router
from .conversation_api import build_http_router

__all__ = ["Connection", "SessionRegistry", "WebSocketConnection", "build_ws_router", "build_http_router"]
