"""Server integration helpers.

Host apps call these to register the relay's API routes.
"""

import logging

logger = logging.getLogger(__name__)

# API path constants
API_PREFIX = "/api/chat-relay"
API_WS = f"{API_PREFIX}/ws"
API_CONVERSATIONS = f"{API_PREFIX}/conversations"


def get_router(services):
    """Return the combined FastAPI APIRouter for the WebSocket and HTTP endpoints.

    Args:
        services: The RelayServices instance the routes operate on

    Returns:
        APIRouter with the live channel and the conversation routes
    """
    from fastapi import APIRouter

    from chat_relay.api.chat_socket_api import build_ws_router
    from chat_relay.api.conversation_api import build_http_router

    router = APIRouter()
    router.include_router(build_http_router(services))
    router.include_router(build_ws_router(services))
    return router
