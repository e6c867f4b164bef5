"""Enumerations for the AI agent module."""

from enum import StrEnum


class MessageRole(StrEnum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ToolInvocationState(StrEnum):
    """Lifecycle of a tool invocation part.

    CALL: The model requested the tool and no result is recorded yet.
    RESULT: Terminal state; the part carries a result value.
    """

    CALL = "call"
    RESULT = "result"


class Decision(StrEnum):
    """Human decision for a confirmation-gated tool call.

    APPROVE: Execute the tool with the arguments the model supplied.
    REJECT: Do not execute; record a denial as the tool result.
    """

    APPROVE = "approve"
    REJECT = "reject"


class TurnState(StrEnum):
    """States of the per-turn generation loop.

    AWAITING_CONFIRMATION is terminal for the turn but is not a failure:
    the loop paused until a human decides on a gated tool call.
    """

    GENERATING = "generating"
    TOOL_PENDING = "tool_pending"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DONE = "done"
    FAILED = "failed"


class ToolErrorType(StrEnum):
    """Category of a tool failure captured as a result value."""

    VALIDATION = "validation"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    UNKNOWN_TOOL = "unknown_tool"
