from .conversation_store import ConversationStore
from .memory_store import MemoryConversationStore


def __getattr__(name):
    """Lazy imports for optional dependencies."""
    if name == "MongoDBConversationStore":
        from .mongodb_store import MongoDBConversationStore
        return MongoDBConversationStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'ConversationStore',
    'MemoryConversationStore',
    'MongoDBConversationStore',
]
