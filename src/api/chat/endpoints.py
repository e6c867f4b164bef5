"""API endpoints for streaming chat conversations."""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse, StreamingResponse

from src.agent.exceptions import ConfigurationError
from src.agent.session import SessionManager
from src.agent.utils.formatting import format_transcript
from src.agent.utils.stream_protocol import (
    DATA_STREAM_HEADER,
    DATA_STREAM_VERSION,
    MEDIA_TYPE,
    encode_stream,
)
from src.api.chat.models import ChatRequest, ClearResponse, MessagesResponse
from src.api.dependencies import get_session_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.post(
    "/{conversation_id}",
    summary="Send a message",
    response_class=StreamingResponse,
    description=(
        "Runs one turn of the conversation and streams the result in the AI SDK "
        "data stream protocol."
    ),
)
def send_message(
    conversation_id: str,
    request: ChatRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> StreamingResponse:
    """Start a turn and stream its events.

    Configuration problems are reported as HTTP 500 before any output.
    """
    logger.info(
        f"Chat turn requested: conversation={conversation_id}, "
        f"text_length={len(request.message.text)}, decisions={len(request.decisions)}"
    )

    if not request.message.text and not request.decisions:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A message text or at least one decision is required",
        )

    session = manager.get(conversation_id)
    try:
        events = session.stream(request.message.text, request.decisions)
    except ConfigurationError as e:
        logger.error(f"Conversation is misconfigured: conversation={conversation_id}, error={e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e

    return StreamingResponse(
        encode_stream(events),
        media_type=MEDIA_TYPE,
        headers={DATA_STREAM_HEADER: DATA_STREAM_VERSION},
    )


@router.get(
    "/{conversation_id}/messages",
    response_model=MessagesResponse,
    summary="Get conversation history",
)
def get_messages(
    conversation_id: str,
    manager: SessionManager = Depends(get_session_manager),
) -> MessagesResponse:
    """Get the persisted messages of a conversation."""
    messages = manager.get(conversation_id).messages()
    logger.debug(f"Loaded history: conversation={conversation_id}, messages={len(messages)}")
    return MessagesResponse(conversation_id=conversation_id, messages=messages)


@router.get(
    "/{conversation_id}/export",
    response_class=PlainTextResponse,
    summary="Export conversation as markdown",
)
def export_conversation(
    conversation_id: str,
    manager: SessionManager = Depends(get_session_manager),
) -> PlainTextResponse:
    """Export a conversation as a markdown transcript."""
    messages = manager.get(conversation_id).messages()
    if not messages:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Conversation has no messages: {conversation_id}",
        )

    filename = f"ai-chat-conversation-{date.today().isoformat()}.md"
    return PlainTextResponse(
        format_transcript(messages),
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete(
    "/{conversation_id}/messages",
    response_model=ClearResponse,
    summary="Clear conversation history",
)
def clear_messages(
    conversation_id: str,
    manager: SessionManager = Depends(get_session_manager),
) -> ClearResponse:
    """Delete every message of a conversation."""
    manager.get(conversation_id).clear()
    return ClearResponse(conversation_id=conversation_id, cleared=True)
