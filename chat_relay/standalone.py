"""Standalone relay server.

Usage::

    poetry run chat-relay

    # Custom port / backend:
    PORT=9000 OLLAMA_URL=http://gpu-box:11434 poetry run chat-relay

Environment variables:
    PORT                : Server port (default: 8000)
    OLLAMA_URL          : Ollama base URL (default: http://localhost:11434)
    OLLAMA_MODEL        : Model name (default: llama3.2)
    HISTORY_WINDOW      : Messages of context sent per request (default: 20)
    SYSTEM_PROMPT       : System instruction (optional)
    MONGODB_CONNECTION  : MongoDB URI; the in-memory store is used when unset
    MONGODB_DB          : MongoDB database (default: chat_relay)
    ALLOWED_ORIGINS     : Comma separated CORS origins

Loads .env from the current working directory or any parent directory.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)


def create_app(services=None):
    """Create the FastAPI application.

    Also called by uvicorn via the factory=True flag.

    Args:
        services: Optional pre-built RelayServices. Built from the environment if omitted.
    """
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    from chat_relay.config import RelayConfig
    from chat_relay.server import API_WS, get_router
    from chat_relay.services import RelayServices

    if services is None:
        services = RelayServices.create(RelayConfig.from_env())

    @asynccontextmanager
    async def lifespan(_a):
        ensure_indexes = getattr(services.store, "ensure_indexes", None)
        if ensure_indexes is not None:
            await ensure_indexes()
        logger.info(f"Ollama URL: {services.config.ollama_url} (model {services.config.model})")
        logger.info(f"Live channel available at: {API_WS}")
        yield
        await services.aclose()
        logger.info("Relay shut down")

    _app = FastAPI(title="chat-relay", lifespan=lifespan)
    _app.state.services = services

    _app.add_middleware(
        CORSMiddleware,
        allow_origins=services.config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _app.include_router(get_router(services))

    @_app.get("/health")
    async def health():
        return {"status": "healthy", "live_sessions": services.registry.active_count}

    return _app


# ── Entry point ──────────────────────────────────────────────────

def main(port: Optional[int] = None):
    """Load .env, configure logging and start the server."""
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    import uvicorn

    port = port or int(os.environ.get("PORT", "8000"))

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    print(f"\n  chat-relay → http://localhost:{port}\n")
    uvicorn.run(
        "chat_relay.standalone:create_app",
        factory=True,
        host="0.0.0.0",
        port=port,
    )


if __name__ == "__main__":
    main()
