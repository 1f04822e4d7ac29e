"""Runtime configuration for the relay, read from environment variables."""
import os
from typing import List, Mapping, Optional

from pydantic import BaseModel, Field

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. You provide clear, accurate, and helpful responses. "
    "You can format your responses using markdown."
)


class RelayConfig(BaseModel):
    """Configuration for the inference backend, the relay and the store."""
    ollama_url: str = Field("http://localhost:11434", description="Base URL of the Ollama server")
    model: str = Field("llama3.2", description="Model name passed to the chat endpoint")
    system_prompt: str = Field(DEFAULT_SYSTEM_PROMPT, description="Fixed system instruction sent with every request")
    history_window: int = Field(20, ge=0, description="Number of most recent messages sent as context")
    temperature: float = Field(0.7, description="Sampling temperature")
    top_p: float = Field(0.9, description="Nucleus sampling threshold")
    request_timeout: float = Field(300.0, gt=0, description="Total timeout in seconds for one streamed response")
    broadcast_send_timeout: float = Field(5.0, gt=0, description="Upper bound in seconds for delivering one event to one subscriber")

    mongo_uri: Optional[str] = Field(None, description="MongoDB connection string. None = in-memory store.")
    mongo_db: str = Field("chat_relay", description="MongoDB database name")

    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:4200"])

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        """Build a config from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        mapping = {
            "ollama_url": "OLLAMA_URL",
            "model": "OLLAMA_MODEL",
            "system_prompt": "SYSTEM_PROMPT",
            "history_window": "HISTORY_WINDOW",
            "temperature": "TEMPERATURE",
            "top_p": "TOP_P",
            "request_timeout": "OLLAMA_TIMEOUT",
            "broadcast_send_timeout": "BROADCAST_SEND_TIMEOUT",
            "mongo_uri": "MONGODB_CONNECTION",
            "mongo_db": "MONGODB_DB",
        }
        values = {field: env[var] for field, var in mapping.items() if env.get(var)}
        origins = env.get("ALLOWED_ORIGINS")
        if origins:
            values["allowed_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        return cls.model_validate(values)
