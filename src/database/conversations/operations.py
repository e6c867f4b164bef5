"""Database operations for conversation storage."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from src.database.conversations.models import ConversationRecord

logger = logging.getLogger(__name__)


def get_conversation(session: Session, conversation_id: str) -> ConversationRecord | None:
    """Get a conversation by ID.

    :param session: Database session.
    :param conversation_id: The conversation ID.
    :returns: The conversation, or None if it has never been saved.
    """
    return session.get(ConversationRecord, conversation_id)


def save_conversation_messages(
    session: Session,
    conversation_id: str,
    messages_json: list[dict[str, Any]],
) -> ConversationRecord:
    """Create or replace the stored history of a conversation.

    :param session: Database session.
    :param conversation_id: The conversation ID.
    :param messages_json: Serialised messages.
    :returns: The saved conversation.
    """
    record = get_conversation(session, conversation_id)
    if record is None:
        record = ConversationRecord(id=conversation_id)
        session.add(record)
        logger.info(f"Created conversation record: id={conversation_id}")

    record.messages_json = messages_json
    record.message_count = len(messages_json)
    record.updated_at = datetime.now(UTC)
    session.flush()

    logger.debug(f"Saved conversation: id={conversation_id}, messages={len(messages_json)}")
    return record


def delete_conversation(session: Session, conversation_id: str) -> bool:
    """Delete a conversation and its history.

    :param session: Database session.
    :param conversation_id: The conversation ID.
    :returns: True if a conversation was deleted.
    """
    record = get_conversation(session, conversation_id)
    if record is None:
        return False

    session.delete(record)
    session.flush()
    logger.info(f"Deleted conversation: id={conversation_id}")
    return True
