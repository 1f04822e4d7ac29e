#!/usr/bin/env python3
"""Standalone relay. Serves the chat-relay WebSocket and HTTP API.

    cd samples/relay
    poetry run python app.py

Requires a running Ollama server (``ollama serve``) with the configured model
pulled, e.g. ``ollama pull llama3.2``. Starts on http://localhost:8000.

Environment variables:
    PORT               : Server port (default: 8000)
    OLLAMA_URL         : Ollama base URL (default: http://localhost:11434)
    OLLAMA_MODEL       : Model name (default: llama3.2)
    MONGODB_CONNECTION : Persist conversations in MongoDB instead of memory
"""
from chat_relay.standalone import main

if __name__ == "__main__":
    main()
