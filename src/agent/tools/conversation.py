"""Conversation introspection tool for the AI agent.

The handler receives the active conversation through an explicit
ToolContext argument.
"""

from typing import Any

from pydantic import BaseModel

from src.agent.enums import MessageRole
from src.agent.models import ToolContext, ToolDef


class ConversationInfoArgs(BaseModel):
    """Arguments for conversation info (none required)."""


def _conversation_info_handler(args: BaseModel, context: ToolContext) -> dict[str, Any]:
    invocations = [part for message in context.messages for part in message.tool_invocations()]
    return {
        "conversation_id": context.conversation_id,
        "message_count": len(context.messages),
        "user_message_count": sum(1 for m in context.messages if m.role == MessageRole.USER),
        "tool_call_count": len(invocations),
        "pending_tool_calls": sum(1 for part in invocations if not part.is_resolved),
    }


CONVERSATION_INFO_TOOL = ToolDef(
    name="get_conversation_info",
    description=(
        "Get statistics about the current conversation: message counts and how many "
        "tool calls were made or are still waiting for the user's decision."
    ),
    args_model=ConversationInfoArgs,
    handler=_conversation_info_handler,
    needs_context=True,
)


def get_conversation_tools() -> list[ToolDef]:
    """Get all conversation tool definitions.

    :returns: List of ToolDef instances for conversation introspection.
    """
    return [CONVERSATION_INFO_TOOL]
