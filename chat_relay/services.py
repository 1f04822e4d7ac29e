"""Wiring of the relay components for one application instance."""

import logging
from dataclasses import dataclass
from typing import Optional

from chat_relay.api.session_registry import SessionRegistry
from chat_relay.config import RelayConfig
from chat_relay.history_loader import HistoryLoader
from chat_relay.inference import InferenceClient, OllamaClient
from chat_relay.relay_orchestrator import RelayOrchestrator
from chat_relay.storage import ConversationStore, MemoryConversationStore

logger = logging.getLogger(__name__)


@dataclass
class RelayServices:
    """The components shared by the HTTP and WebSocket routes."""
    config: RelayConfig
    store: ConversationStore
    registry: SessionRegistry
    inference_client: InferenceClient
    orchestrator: RelayOrchestrator
    history_loader: HistoryLoader

    @classmethod
    def create(
        cls,
        config: Optional[RelayConfig] = None,
        *,
        store: Optional[ConversationStore] = None,
        inference_client: Optional[InferenceClient] = None,
    ) -> "RelayServices":
        """Build all components from a config. Explicit arguments take precedence."""
        config = config or RelayConfig()

        if store is None:
            if config.mongo_uri:
                from chat_relay.storage import MongoDBConversationStore
                store = MongoDBConversationStore(mongo_uri=config.mongo_uri, mongo_db=config.mongo_db)
                logger.info(f"[SERVICES] Using MongoDB store (database {config.mongo_db})")
            else:
                store = MemoryConversationStore()
                logger.info("[SERVICES] Using in-memory store")

        inference_client = inference_client or OllamaClient.from_config(config)
        registry = SessionRegistry(send_timeout=config.broadcast_send_timeout)

        return cls(
            config=config,
            store=store,
            registry=registry,
            inference_client=inference_client,
            orchestrator=RelayOrchestrator(
                store=store,
                registry=registry,
                inference_client=inference_client,
                history_window=config.history_window,
            ),
            history_loader=HistoryLoader(store=store, registry=registry),
        )

    async def aclose(self) -> None:
        await self.inference_client.aclose()
        await self.store.close()
