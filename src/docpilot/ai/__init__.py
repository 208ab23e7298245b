"""AI client, intent recognition, and edit orchestration."""

from .client import AIClient, ChatResponse, ChatService, ClientSettings

__all__ = ["AIClient", "ChatResponse", "ChatService", "ClientSettings"]
