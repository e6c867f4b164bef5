"""Message stores for conversation history.

A store loads and saves the full message list of a conversation. Saves
replace the whole history so a turn's changes land atomically.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from pydantic import TypeAdapter
from sqlalchemy.engine import Engine

from src.agent.models import Message
from src.database.connection import create_session_factory, session_scope
from src.database.conversations import (
    delete_conversation,
    get_conversation,
    save_conversation_messages,
)

logger = logging.getLogger(__name__)

_MESSAGES_ADAPTER = TypeAdapter(list[Message])


class MessageStore(Protocol):
    """Persistence for conversation histories."""

    def load(self, conversation_id: str) -> list[Message]:
        """Load a conversation's messages, oldest first. Empty if unknown."""
        ...

    def save(self, conversation_id: str, messages: list[Message]) -> None:
        """Replace a conversation's messages."""
        ...

    def clear(self, conversation_id: str) -> None:
        """Delete a conversation's messages."""
        ...


class InMemoryMessageStore:
    """Process-local store, used when no database is configured."""

    def __init__(self) -> None:
        """Initialise an empty store."""
        self._conversations: dict[str, list[Message]] = {}
        self._lock = threading.Lock()

    def load(self, conversation_id: str) -> list[Message]:
        """Load a conversation's messages.

        :param conversation_id: The conversation ID.
        :returns: Copy of the stored message list.
        """
        with self._lock:
            return list(self._conversations.get(conversation_id, []))

    def save(self, conversation_id: str, messages: list[Message]) -> None:
        """Replace a conversation's messages.

        :param conversation_id: The conversation ID.
        :param messages: Full message list.
        """
        with self._lock:
            self._conversations[conversation_id] = list(messages)

    def clear(self, conversation_id: str) -> None:
        """Delete a conversation's messages.

        :param conversation_id: The conversation ID.
        """
        with self._lock:
            self._conversations.pop(conversation_id, None)


class SQLMessageStore:
    """Store backed by the conversations table."""

    def __init__(self, engine: Engine) -> None:
        """Initialise the store.

        :param engine: SQLAlchemy engine. Tables must already exist.
        """
        self._session_factory = create_session_factory(engine)

    def load(self, conversation_id: str) -> list[Message]:
        """Load a conversation's messages.

        :param conversation_id: The conversation ID.
        :returns: Deserialised messages, empty if the conversation is unknown.
        """
        with session_scope(self._session_factory) as session:
            record = get_conversation(session, conversation_id)
            if record is None:
                return []
            return _MESSAGES_ADAPTER.validate_python(record.messages_json)

    def save(self, conversation_id: str, messages: list[Message]) -> None:
        """Replace a conversation's messages.

        :param conversation_id: The conversation ID.
        :param messages: Full message list.
        """
        payload = _MESSAGES_ADAPTER.dump_python(messages, mode="json")
        with session_scope(self._session_factory) as session:
            save_conversation_messages(session, conversation_id, payload)

    def clear(self, conversation_id: str) -> None:
        """Delete a conversation's messages.

        :param conversation_id: The conversation ID.
        """
        with session_scope(self._session_factory) as session:
            deleted = delete_conversation(session, conversation_id)
        if not deleted:
            logger.debug(f"Nothing to clear: conversation={conversation_id}")
