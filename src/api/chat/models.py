"""Pydantic models for chat API endpoints."""

from pydantic import BaseModel, Field

from src.agent.enums import Decision
from src.agent.models import Message


class ChatMessageInput(BaseModel):
    """The user's message for a turn."""

    id: str | None = Field(None, description="Client-side message ID")
    text: str = Field(
        "", max_length=32000, description="Message text; empty for decision-only turns"
    )


class ChatRequest(BaseModel):
    """Request model for starting a chat turn."""

    message: ChatMessageInput = Field(default_factory=ChatMessageInput, description="User message")
    decisions: dict[str, Decision] = Field(
        default_factory=dict,
        description="Decisions for pending tool calls, keyed by tool call ID",
    )


class MessagesResponse(BaseModel):
    """Response model for a conversation's history."""

    conversation_id: str = Field(..., description="Conversation ID")
    messages: list[Message] = Field(..., description="Messages, oldest first")


class ClearResponse(BaseModel):
    """Response model for clearing a conversation."""

    conversation_id: str = Field(..., description="Conversation ID")
    cleared: bool = Field(..., description="Whether the history was cleared")
