"""Human-readable formatting for agent conversations.

Provides the action summaries shown when a gated tool call awaits a human
decision, and the markdown transcript export of a conversation.
"""

import json
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

import humanize

from src.agent.enums import MessageRole
from src.agent.models import Message, SourcePart, TextPart, ToolInvocationPart

# Maximum length for an argument value before truncation in summaries
CONTENT_TRUNCATION_LENGTH = 50

# Maximum length for an action summary
MAX_SUMMARY_LENGTH = 150

# Annotation key holding provenance sources
SOURCES_KEY = "sources"

ROLE_LABELS = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Assistant",
    MessageRole.SYSTEM: "System",
}


def format_time_human(value: datetime) -> str:
    """Convert a datetime to a human-readable timestamp with ordinal day.

    :param value: Datetime to format.
    :returns: Text like "15th Jan 2025 at 2:30 PM".
    """
    day = humanize.ordinal(value.day)
    return f"{day} {value.strftime('%b %Y')} at {value.strftime('%-I:%M %p')}"


def _format_value(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) > CONTENT_TRUNCATION_LENGTH:
        return f"{text[:CONTENT_TRUNCATION_LENGTH].strip()}..."
    return text


def generate_action_summary(description: str, args: dict[str, Any]) -> str:
    """Generate a human-readable summary of a tool action.

    :param description: Tool description.
    :param args: Tool arguments.
    :returns: Summary like "Get the current weather for a city (city: London)".
    """
    # Use the first sentence of the description
    summary = description.split(".")[0].strip()

    if args:
        rendered = ", ".join(f"{key}: {_format_value(value)}" for key, value in args.items())
        summary = f"{summary} ({rendered})"

    if len(summary) > MAX_SUMMARY_LENGTH:
        summary = summary[: MAX_SUMMARY_LENGTH - 3] + "..."

    return summary


def _format_result(result: Any) -> str:
    if isinstance(result, (dict, list)):
        return json.dumps(result, indent=2, default=str)
    return str(result)


def _source_title(source: dict[str, Any]) -> str:
    return source.get("title") or urlparse(source.get("url", "")).hostname or source.get("url", "")


def _format_part(part: TextPart | ToolInvocationPart | SourcePart) -> list[str]:
    if isinstance(part, TextPart):
        return [part.text, ""]

    if isinstance(part, ToolInvocationPart):
        lines = [
            f"**Tool Call**: {part.tool_name}",
            "```json",
            json.dumps(part.args, indent=2, default=str),
            "```",
            "",
        ]
        if part.is_resolved:
            lines.extend(["**Result**:", "```", _format_result(part.result), "```", ""])
        return lines

    title = part.source.title or urlparse(part.source.url).hostname or part.source.url
    return [f"[{title}]({part.source.url})", ""]


def _format_sources(message: Message) -> list[str]:
    sources = [
        source
        for annotation in message.annotations
        for source in annotation.get(SOURCES_KEY, [])
    ]
    if not sources:
        return []

    lines = ["**Sources:**", ""]
    lines.extend(f"- [{_source_title(source)}]({source.get('url', '')})" for source in sources)
    lines.append("")
    return lines


def format_transcript(messages: list[Message], exported_at: datetime | None = None) -> str:
    """Render a conversation as a markdown transcript.

    Each message becomes a section with its role and timestamp, followed by
    its text, tool calls with their results, and any attached sources.

    :param messages: Conversation history.
    :param exported_at: Export timestamp. Defaults to now.
    :returns: Markdown document.
    """
    exported_at = exported_at or datetime.now()
    lines = ["# AI Chat Conversation", "", f"*Exported on {format_time_human(exported_at)}*", ""]

    for message in messages:
        label = ROLE_LABELS[message.role]
        lines.extend([f"## {label} ({format_time_human(message.created_at)})", ""])
        for part in message.parts:
            lines.extend(_format_part(part))
        lines.extend(_format_sources(message))
        lines.extend(["---", ""])

    return "\n".join(lines)
