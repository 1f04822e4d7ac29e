"""Test package for chat-relay."""
