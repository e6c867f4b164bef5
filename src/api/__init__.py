"""API module for the chat agent service."""

from src.api.app import app

__all__ = ["app"]
