"""Encoder for the AI SDK data stream protocol.

Each stream event becomes one line of the form ``<code>:<json>\\n``. Clients
built on the AI SDK (``useChat``) parse this format when the response
carries the ``x-vercel-ai-data-stream: v1`` header.
"""

import json
from collections.abc import Iterable, Iterator
from typing import Any

from src.agent.enums import TurnState
from src.agent.models import (
    AnnotationEvent,
    ErrorEvent,
    FinishEvent,
    StartEvent,
    StreamEvent,
    TextEvent,
    ToolCallEvent,
    ToolResultEvent,
)

DATA_STREAM_HEADER = "x-vercel-ai-data-stream"
DATA_STREAM_VERSION = "v1"
MEDIA_TYPE = "text/plain; charset=utf-8"

START_CODE = "f"
TEXT_CODE = "0"
ANNOTATION_CODE = "8"
TOOL_CALL_CODE = "9"
TOOL_RESULT_CODE = "a"
ERROR_CODE = "3"
FINISH_CODE = "d"

# Client-facing finish reasons keyed by internal reason
FINISH_REASONS = {
    "stop": "stop",
    "length": "length",
    "content-filter": "content-filter",
    "awaiting-confirmation": "tool-calls",
    "max-steps": "other",
}


def _line(code: str, value: Any) -> str:
    return f"{code}:{json.dumps(value, default=str, separators=(',', ':'))}\n"


def encode_event(event: StreamEvent) -> str:
    """Encode one stream event as a protocol line.

    :param event: Stream event.
    :returns: Encoded line, newline terminated.
    :raises TypeError: If the event type is not supported.
    """
    if isinstance(event, StartEvent):
        return _line(START_CODE, {"messageId": event.message_id})

    if isinstance(event, TextEvent):
        return _line(TEXT_CODE, event.text)

    if isinstance(event, ToolCallEvent):
        return _line(
            TOOL_CALL_CODE,
            {"toolCallId": event.tool_call_id, "toolName": event.tool_name, "args": event.args},
        )

    if isinstance(event, ToolResultEvent):
        return _line(TOOL_RESULT_CODE, {"toolCallId": event.tool_call_id, "result": event.result})

    if isinstance(event, AnnotationEvent):
        return _line(ANNOTATION_CODE, [event.annotation])

    if isinstance(event, ErrorEvent):
        return _line(ERROR_CODE, event.message)

    if isinstance(event, FinishEvent):
        payload: dict[str, Any] = {
            "finishReason": FINISH_REASONS.get(event.finish_reason, "other"),
            "state": str(event.state),
            "steps": event.steps_taken,
        }
        if event.state == TurnState.AWAITING_CONFIRMATION:
            payload["pending"] = [action.model_dump(mode="json") for action in event.pending]
        return _line(FINISH_CODE, payload)

    raise TypeError(f"Unsupported stream event: {type(event).__name__}")


def encode_stream(events: Iterable[StreamEvent]) -> Iterator[str]:
    """Encode a stream of events lazily.

    Closing the returned iterator closes the underlying event stream.

    :param events: Stream events.
    :returns: Iterator of encoded lines.
    """
    iterator = iter(events)
    try:
        for event in iterator:
            yield encode_event(event)
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()
