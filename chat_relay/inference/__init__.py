from .inference_client import InferenceChunk, InferenceClient
from .ollama_client import OllamaChatEvent, OllamaClient

__all__ = ["InferenceChunk", "InferenceClient", "OllamaChatEvent", "OllamaClient"]
