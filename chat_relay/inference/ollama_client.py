"""
Streaming client for the Ollama chat endpoint.

Ollama answers ``POST /api/chat`` with ``stream: true`` as newline-delimited
JSON objects of the shape ``{"message": {"role", "content"}, "done": bool}``.
"""
from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import aiohttp
from pydantic import BaseModel, ValidationError

from chat_relay.config import RelayConfig
from chat_relay.errors import BackendProtocolError, BackendUnreachable
from chat_relay.inference.inference_client import InferenceChunk, InferenceClient
from chat_relay.models import Message

logger = logging.getLogger(__name__)


class _OllamaMessage(BaseModel):
    role: str = "assistant"
    content: str = ""


class OllamaChatEvent(BaseModel):
    """One line of the streamed chat response. Unknown fields are ignored."""
    message: Optional[_OllamaMessage] = None
    done: bool = False
    error: Optional[str] = None


class OllamaClient(InferenceClient):
    """Client for a local Ollama server.

    Never retries. Connection and protocol failures end the stream with one
    error chunk.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        system_prompt: str,
        history_window: int = 20,
        temperature: float = 0.7,
        top_p: float = 0.9,
        request_timeout: float = 300.0,
    ) -> None:
        super().__init__(model, system_prompt, history_window, temperature, top_p)
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: RelayConfig) -> "OllamaClient":
        return cls(
            base_url=config.ollama_url,
            model=config.model,
            system_prompt=config.system_prompt,
            history_window=config.history_window,
            temperature=config.temperature,
            top_p=config.top_p,
            request_timeout=config.request_timeout,
        )

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}/api/chat"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def aclose(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def build_payload(self, history: Sequence[Message], prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": self.build_messages(history, prompt),
            "stream": True,
            "options": {"temperature": self.temperature, "top_p": self.top_p},
        }

    @staticmethod
    async def _read_error_detail(resp: aiohttp.ClientResponse) -> str:
        try:
            body = (await resp.text()).strip()
        except aiohttp.ClientError:
            return ""
        try:
            parsed = json.loads(body)
        except ValueError:
            return body
        if isinstance(parsed, dict) and parsed.get("error"):
            return str(parsed["error"])
        return body

    async def astream(
        self,
        history: Sequence[Message],
        prompt: str,
    ) -> AsyncIterator[InferenceChunk]:
        payload = self.build_payload(history, prompt)
        chunk_index = itertools.count()
        received_chars = 0

        logger.info(f"[OLLAMA] Sending request to {self.chat_url} (model={self.model}, messages={len(payload['messages'])})")

        try:
            async with self._get_session().post(self.chat_url, json=payload) as resp:
                if not resp.ok:
                    detail = await self._read_error_detail(resp)
                    message = f"Ollama at {self.base_url} returned HTTP {resp.status}"
                    if detail:
                        message += f": {detail}"
                    logger.error(f"[OLLAMA] {message}")
                    yield InferenceChunk.from_error(BackendUnreachable(message, status=resp.status), next(chunk_index))
                    return

                async for raw_line in resp.content:
                    line = raw_line.strip()
                    if not line:
                        continue

                    try:
                        event = OllamaChatEvent.model_validate_json(line)
                    except ValidationError as e:
                        logger.error(f"[OLLAMA] Unparseable stream line: {line[:200]!r}")
                        error = BackendProtocolError(f"Invalid event from Ollama: {e.errors()[0]['msg']}")
                        yield InferenceChunk.from_error(error, next(chunk_index))
                        return

                    if event.error:
                        logger.error(f"[OLLAMA] Error reported in stream: {event.error}")
                        yield InferenceChunk.from_error(BackendProtocolError(event.error), next(chunk_index))
                        return

                    if event.message is None and not event.done:
                        yield InferenceChunk.from_error(
                            BackendProtocolError("Event carries neither a message nor a done flag"),
                            next(chunk_index),
                        )
                        return

                    content = event.message.content if event.message else ""
                    if content:
                        received_chars += len(content)
                        yield InferenceChunk(content=content, index=next(chunk_index))

                    if event.done:
                        logger.info(f"[OLLAMA] Stream completed. Total: {received_chars} chars")
                        return

                logger.info(f"[OLLAMA] Stream ended without done flag after {received_chars} chars")

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"[OLLAMA] Cannot reach Ollama at {self.base_url}: {type(e).__name__}: {e}")
            error = BackendUnreachable(
                f"Cannot connect to Ollama at {self.base_url}. Please ensure Ollama is running. ({type(e).__name__})"
            )
            yield InferenceChunk.from_error(error, next(chunk_index))
