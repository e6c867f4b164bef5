"""Pydantic models for the AI agent module."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from src.agent.enums import Decision, MessageRole, ToolInvocationState, TurnState


def generate_id() -> str:
    """Generate a stable identifier for messages, sources and tool calls.

    :returns: 32-character hex string.
    """
    return uuid.uuid4().hex


class ToolDef(BaseModel):
    """Definition of a tool that can be invoked by the AI agent.

    :param name: Unique identifier for the tool.
    :param description: LLM-facing description of what the tool does.
    :param args_model: Pydantic model class defining the tool's arguments.
    :param handler: Function that executes the tool. None declares a
        confirmation-only tool with no server-side effect.
    :param needs_context: Whether the handler takes a ToolContext as its
        second argument.
    """

    name: str = Field(..., min_length=1, max_length=64)
    description: str = Field(..., min_length=1, max_length=1024)
    args_model: type[BaseModel]
    handler: Callable[..., Any] | None = None
    needs_context: bool = False

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    def to_json_schema(self) -> dict[str, Any]:
        """Generate JSON schema for the tool's arguments.

        :returns: JSON schema dictionary compatible with Bedrock Converse.
        """
        schema = self.args_model.model_json_schema()
        # Remove schema metadata not needed by Bedrock
        schema.pop("title", None)
        return schema

    def to_bedrock_tool_spec(self) -> dict[str, Any]:
        """Generate tool specification for AWS Bedrock Converse API.

        :returns: Tool specification dictionary for Bedrock toolConfig.
        """
        return {
            "toolSpec": {
                "name": self.name,
                "description": self.description,
                "inputSchema": {"json": self.to_json_schema()},
            }
        }


class SourceRecord(BaseModel):
    """Provenance record for content the model grounded its answer on."""

    id: str = Field(default_factory=generate_id)
    url: str
    title: str | None = None

    model_config = {"frozen": True}


class TextPart(BaseModel):
    """Plain text produced by the model or typed by the user."""

    type: Literal["text"] = "text"
    text: str

    model_config = {"frozen": True}


class ToolInvocationPart(BaseModel):
    """A tool call made by the model and, once resolved, its result.

    :param tool_call_id: Conversation-unique identifier of the call.
    :param tool_name: Name of the invoked tool.
    :param args: Arguments supplied by the model.
    :param state: CALL until resolved, then RESULT.
    :param result: Result value. Only meaningful in the RESULT state.
    """

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    state: ToolInvocationState = ToolInvocationState.CALL
    result: Any = None

    model_config = {"frozen": True}

    @property
    def is_resolved(self) -> bool:
        """Whether the invocation reached its terminal state."""
        return self.state == ToolInvocationState.RESULT

    def with_result(self, result: Any) -> ToolInvocationPart:
        """Return a copy of this invocation moved to the RESULT state.

        :param result: Result value to record.
        :returns: New part; this one is left untouched.
        """
        return self.model_copy(update={"state": ToolInvocationState.RESULT, "result": result})


class SourcePart(BaseModel):
    """Passthrough provenance marker inside the content."""

    type: Literal["source"] = "source"
    source: SourceRecord

    model_config = {"frozen": True}


Part = Annotated[TextPart | ToolInvocationPart | SourcePart, Field(discriminator="type")]


class Message(BaseModel):
    """One turn in a conversation.

    :param id: Unique, stable identifier.
    :param role: Author of the message.
    :param created_at: Creation timestamp (UTC).
    :param parts: Ordered content parts.
    :param annotations: Side-channel metadata attached after generation.
    :param decisions: Decision payload for gated tool calls, keyed by
        tool_call_id. Only user messages carry decisions.
    """

    id: str = Field(default_factory=generate_id)
    role: MessageRole
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    parts: list[Part] = Field(default_factory=list)
    annotations: list[dict[str, Any]] = Field(default_factory=list)
    decisions: dict[str, Decision] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_invocations(self) -> list[ToolInvocationPart]:
        """List the tool invocation parts in order.

        :returns: Tool invocation parts.
        """
        return [part for part in self.parts if isinstance(part, ToolInvocationPart)]

    def replace_part(self, index: int, part: TextPart | ToolInvocationPart | SourcePart) -> Message:
        """Return a copy of this message with one part replaced.

        :param index: Index of the part to replace.
        :param part: Replacement part.
        :returns: New message sharing every other part with this one.
        """
        parts = list(self.parts)
        parts[index] = part
        return self.model_copy(update={"parts": parts})


def create_user_message(text: str, decisions: dict[str, Decision] | None = None) -> Message:
    """Create a user message.

    :param text: Message text. May be empty for a decision-only turn.
    :param decisions: Optional decision payload.
    :returns: The user message.
    """
    parts: list[TextPart | ToolInvocationPart | SourcePart] = [TextPart(text=text)] if text else []
    return Message(role=MessageRole.USER, parts=parts, decisions=decisions or {})


@dataclass(frozen=True)
class PendingCall:
    """A gated tool invocation found in `call` state."""

    message_index: int
    part_index: int
    tool_call_id: str
    tool_name: str
    args: dict[str, Any]


@dataclass(frozen=True)
class ToolContext:
    """Explicit conversation handle passed to tools that need it."""

    conversation_id: str
    messages: tuple[Message, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ToolOutcome:
    """Result of running a tool: a value or a captured error."""

    result: Any
    is_error: bool = False


class ToolCall(BaseModel):
    """Record of a single resolved tool call during a turn.

    :param tool_call_id: Unique identifier for the tool call.
    :param tool_name: Name of the tool called.
    :param args: Input arguments passed to the tool.
    :param output: Result written into history.
    :param is_error: Whether the result is an error sentinel.
    """

    tool_call_id: str
    tool_name: str
    args: dict[str, Any]
    output: Any
    is_error: bool = False


class PendingToolAction(BaseModel):
    """A single gated tool action awaiting a human decision.

    :param tool_call_id: ID of the tool call from the model.
    :param tool_name: Name of the tool.
    :param tool_description: Description of the tool.
    :param args: Arguments that would be passed to the tool.
    :param action_summary: Human-readable summary of what the tool would do.
    """

    tool_call_id: str
    tool_name: str
    tool_description: str
    args: dict[str, Any]
    action_summary: str


class StartEvent(BaseModel):
    """Opens the output for an assistant message."""

    type: Literal["start"] = "start"
    message_id: str


class TextEvent(BaseModel):
    """A chunk of model text."""

    type: Literal["text"] = "text"
    text: str


class ToolCallEvent(BaseModel):
    """The model requested a tool."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any]


class ToolResultEvent(BaseModel):
    """A tool call was resolved."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    result: Any
    is_error: bool = False


class AnnotationEvent(BaseModel):
    """Message-level metadata, emitted after the message content is final."""

    type: Literal["annotation"] = "annotation"
    message_id: str
    annotation: dict[str, Any]


class ErrorEvent(BaseModel):
    """Terminal failure of the turn."""

    type: Literal["error"] = "error"
    message: str


class FinishEvent(BaseModel):
    """Terminal marker carrying the final turn state."""

    type: Literal["finish"] = "finish"
    state: TurnState
    finish_reason: str
    steps_taken: int = 0
    pending: list[PendingToolAction] = Field(default_factory=list)


StreamEvent = Annotated[
    StartEvent
    | TextEvent
    | ToolCallEvent
    | ToolResultEvent
    | AnnotationEvent
    | ErrorEvent
    | FinishEvent,
    Field(discriminator="type"),
]


class TurnResult(BaseModel):
    """Collected result of one turn.

    :param message_id: ID of the assistant message produced by the turn.
    :param response: Final text response from the agent.
    :param tool_calls: Tool calls resolved during the turn.
    :param steps_taken: Number of model steps taken.
    :param state: Terminal state of the turn.
    :param error: Error message when the turn failed.
    :param pending: Gated actions awaiting a decision.
    :param sources: Provenance sources attached to the message.
    """

    message_id: str | None = None
    response: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    steps_taken: int = 0
    state: TurnState = TurnState.DONE
    error: str | None = None
    pending: list[PendingToolAction] = Field(default_factory=list)
    sources: list[SourceRecord] = Field(default_factory=list)
