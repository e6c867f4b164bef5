"""Discovery of confirmation-gated tool calls awaiting a human decision."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from src.agent.enums import MessageRole
from src.agent.models import Message, PendingCall, ToolInvocationPart

logger = logging.getLogger(__name__)


def latest_assistant_index(messages: list[Message]) -> int | None:
    """Find the index of the most recent assistant message.

    :param messages: Conversation history.
    :returns: Index of the last assistant message, or None if there is none.
    """
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].role == MessageRole.ASSISTANT:
            return index
    return None


def find_pending_calls(
    messages: list[Message],
    confirmation_required: Iterable[str],
    latest_only: bool = True,
) -> tuple[PendingCall, ...]:
    """Find gated tool invocations still in the CALL state.

    With latest_only (the per-turn path) only the most recent assistant
    message is scanned. Pending calls in older messages are left alone so a
    stale confirmation request is never resolved by an unrelated later turn.

    :param messages: Conversation history. Not modified.
    :param confirmation_required: Names of gated tools.
    :param latest_only: Only scan the most recent assistant message.
    :returns: Pending calls ordered by message index, then part index.
    """
    gated = frozenset(confirmation_required)

    if latest_only:
        latest = latest_assistant_index(messages)
        indices: Iterable[int] = [] if latest is None else [latest]
    else:
        indices = range(len(messages))

    pending: list[PendingCall] = []
    for message_index in indices:
        message = messages[message_index]
        if message.role != MessageRole.ASSISTANT:
            continue
        for part_index, part in enumerate(message.parts):
            if (
                isinstance(part, ToolInvocationPart)
                and not part.is_resolved
                and part.tool_name in gated
            ):
                pending.append(
                    PendingCall(
                        message_index=message_index,
                        part_index=part_index,
                        tool_call_id=part.tool_call_id,
                        tool_name=part.tool_name,
                        args=dict(part.args),
                    )
                )

    if pending:
        logger.debug(f"Found pending gated calls: ids={[p.tool_call_id for p in pending]}")
    return tuple(pending)
