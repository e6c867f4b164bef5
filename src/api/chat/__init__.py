"""Chat API."""

from src.api.chat.endpoints import router

__all__ = ["router"]
