"""Conversation storage database models and operations."""

from src.database.conversations.models import ConversationRecord
from src.database.conversations.operations import (
    delete_conversation,
    get_conversation,
    save_conversation_messages,
)

__all__ = [
    "ConversationRecord",
    "delete_conversation",
    "get_conversation",
    "save_conversation_messages",
]
