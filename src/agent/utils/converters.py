"""Converters between conversation messages and Bedrock Converse messages.

Key differences between the two shapes:
- Bedrock only has "user" and "assistant" roles; system messages go to the
  system prompt instead.
- Tool results are toolResult blocks in a user message that must directly
  follow the assistant message holding the matching toolUse blocks.
- Roles must alternate, so adjacent messages of the same role are merged.
- One conversation message can hold several model steps, so it may expand
  into several Bedrock messages.
"""

from __future__ import annotations

import json
from typing import Any

from src.agent.enums import MessageRole
from src.agent.executor import is_error_result
from src.agent.models import Message, TextPart, ToolInvocationPart


def tool_result_to_bedrock_block(part: ToolInvocationPart) -> dict[str, Any]:
    """Convert a resolved tool invocation into a toolResult block.

    :param part: Tool invocation in the RESULT state.
    :returns: Bedrock toolResult content block.
    """
    if isinstance(part.result, dict):
        content: list[dict[str, Any]] = [{"json": part.result}]
    elif isinstance(part.result, str):
        content = [{"text": part.result}]
    else:
        # Bedrock json blocks must be objects; lists and scalars go as JSON text
        content = [{"text": json.dumps(part.result, default=str)}]
    return {
        "toolResult": {
            "toolUseId": part.tool_call_id,
            "content": content,
            "status": "error" if is_error_result(part.result) else "success",
        }
    }


def tool_use_to_bedrock_block(part: ToolInvocationPart) -> dict[str, Any]:
    """Convert a tool invocation into a toolUse block.

    :param part: Tool invocation part.
    :returns: Bedrock toolUse content block.
    """
    return {
        "toolUse": {
            "toolUseId": part.tool_call_id,
            "name": part.tool_name,
            "input": part.args,
        }
    }


def _assistant_to_bedrock(message: Message) -> list[dict[str, Any]]:
    """Expand an assistant message into alternating Bedrock messages.

    Invocations still in the CALL state are omitted: they have no result yet
    and must not be presented to the model as resolved.
    """
    converted: list[dict[str, Any]] = []
    content: list[dict[str, Any]] = []
    results: list[dict[str, Any]] = []

    def flush() -> None:
        if content:
            converted.append({"role": "assistant", "content": list(content)})
        if results:
            converted.append({"role": "user", "content": list(results)})
        content.clear()
        results.clear()

    for part in message.parts:
        if isinstance(part, TextPart):
            if results:
                flush()
            if part.text:
                content.append({"text": part.text})
        elif isinstance(part, ToolInvocationPart) and part.is_resolved:
            content.append(tool_use_to_bedrock_block(part))
            results.append(tool_result_to_bedrock_block(part))

    flush()
    return converted


def _merge_adjacent(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    merged: list[dict[str, Any]] = []
    for message in messages:
        if merged and merged[-1]["role"] == message["role"]:
            merged[-1]["content"].extend(message["content"])
        else:
            merged.append({"role": message["role"], "content": list(message["content"])})
    return merged


def to_bedrock_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert conversation history into Bedrock Converse messages.

    :param messages: Ordered conversation history.
    :returns: Bedrock messages with alternating roles, starting with a user turn.
    """
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == MessageRole.USER:
            text = message.text
            if text:
                converted.append({"role": "user", "content": [{"text": text}]})
        elif message.role == MessageRole.ASSISTANT:
            converted.extend(_assistant_to_bedrock(message))

    merged = _merge_adjacent(converted)

    # Bedrock rejects conversations that open with an assistant turn
    while merged and merged[0]["role"] != "user":
        merged.pop(0)
    return merged


def system_text(messages: list[Message]) -> str:
    """Collect the text of system messages in the history.

    :param messages: Ordered conversation history.
    :returns: System message text joined by blank lines.
    """
    return "\n\n".join(
        message.text for message in messages if message.role == MessageRole.SYSTEM and message.text
    )
