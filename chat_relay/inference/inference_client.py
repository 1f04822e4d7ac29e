"""Base inference client and the chunk type it streams."""
from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional, Sequence

from pydantic import BaseModel

from chat_relay.errors import InferenceError
from chat_relay.models import Message


class InferenceChunk(BaseModel):
    """One step of a streamed response.

    A chunk carries either a text fragment or, as the last element of the
    stream, an error. End of stream is signalled by iterator exhaustion.
    """
    content: str = ""
    index: int = 0
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error_type is not None

    @classmethod
    def from_error(cls, error: InferenceError, index: int = 0) -> "InferenceChunk":
        return cls(index=index, error_type=type(error).__name__, error_message=str(error))

    def describe_error(self) -> str:
        return f"{self.error_type}: {self.error_message}" if self.is_error else ""


class InferenceClient(ABC):
    """Base class for streaming inference backends."""

    def __init__(
        self,
        model: str,
        system_prompt: str,
        history_window: int = 20,
        temperature: float = 0.7,
        top_p: float = 0.9,
    ):
        """Initialize the client.

        Args:
            model: Model name to request
            system_prompt: System instruction placed first in every request
            history_window: Maximum number of history messages sent as context
            temperature: Sampling temperature
            top_p: Nucleus sampling threshold
        """
        self.model = model
        self.system_prompt = system_prompt
        self.history_window = history_window
        self.temperature = temperature
        self.top_p = top_p

    def bound_history(self, history: Sequence[Message]) -> List[Message]:
        """Keep only the most recent ``history_window`` messages, oldest first."""
        if self.history_window <= 0:
            return []
        return list(history)[-self.history_window:]

    def build_messages(self, history: Sequence[Message], prompt: str) -> List[dict]:
        """System instruction, bounded history, then the new prompt."""
        messages = [{"role": "system", "content": self.system_prompt}]
        for msg in self.bound_history(history):
            messages.append({"role": msg.role.value, "content": msg.content})
        messages.append({"role": "user", "content": prompt})
        return messages

    @abstractmethod
    def astream(self, history: Sequence[Message], prompt: str) -> AsyncIterator[InferenceChunk]:
        """Stream the model's response to ``prompt``.

        Backend failures are yielded as a single terminal error chunk, never
        raised.

        Args:
            history: Previous messages, oldest first
            prompt: The new user message

        Returns:
            AsyncIterator yielding response chunks
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the client."""
        return None
