"""Model provider contract and the Bedrock implementation.

A provider runs exactly one model step: it streams text deltas and tool
call requests, then a StepFinish carrying the stop reason and any
provenance sources. The multi-step loop and the step budget live in the
StreamComposer.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from src.agent.bedrock_client import BedrockClient
from src.agent.models import Message, SourceRecord
from src.agent.utils.config import DEFAULT_AGENT_CONFIG, AgentConfig
from src.agent.utils.converters import system_text, to_bedrock_messages

logger = logging.getLogger(__name__)

# Bedrock stop reasons raised by guardrails or content filtering
SAFETY_STOP_REASONS = frozenset({"guardrail_intervened", "content_filtered"})


@dataclass(frozen=True)
class TextDelta:
    """A chunk of generated text."""

    text: str


@dataclass(frozen=True)
class ToolCallRequest:
    """The model asked for a tool to be called."""

    tool_call_id: str
    tool_name: str
    args: dict[str, Any]


@dataclass(frozen=True)
class StepFinish:
    """End of one model step."""

    finish_reason: str
    sources: tuple[SourceRecord, ...] = ()
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def is_safety_stop(self) -> bool:
        """Whether a guardrail or content filter ended the step."""
        return self.finish_reason in SAFETY_STOP_REASONS


ProviderEvent = TextDelta | ToolCallRequest | StepFinish


class ModelProvider(Protocol):
    """Streams a single model step over the given history."""

    def stream_step(
        self,
        system_prompt: str,
        messages: list[Message],
        tool_config: dict[str, Any] | None,
    ) -> Iterator[ProviderEvent]:
        """Stream one step of generation.

        :param system_prompt: System prompt for the model.
        :param messages: Conversation history, including the in-progress
            assistant message.
        :param tool_config: Tool declarations, or None when no tools exist.
        :returns: Iterator of provider events ending with a StepFinish.
        """
        ...


def _parse_tool_input(raw_input: str, tool_name: str) -> dict[str, Any]:
    if not raw_input:
        return {}
    try:
        parsed = json.loads(raw_input)
    except json.JSONDecodeError:
        logger.warning(f"Model produced invalid tool input JSON: tool={tool_name}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _source_from_citation(citation: dict[str, Any]) -> SourceRecord | None:
    location = citation.get("location", {})
    web = location.get("web") if isinstance(location, dict) else None
    if not web or not web.get("url"):
        return None
    return SourceRecord(url=web["url"], title=citation.get("title") or web.get("domain"))


class BedrockModelProvider:
    """ModelProvider backed by the Bedrock ConverseStream API."""

    def __init__(
        self,
        client: BedrockClient | None = None,
        config: AgentConfig = DEFAULT_AGENT_CONFIG,
    ) -> None:
        """Initialise the provider.

        :param client: Bedrock client. Creates one if not provided.
        :param config: Agent configuration for model and sampling settings.
        """
        self.client = client or BedrockClient()
        self._config = config

    def stream_step(
        self,
        system_prompt: str,
        messages: list[Message],
        tool_config: dict[str, Any] | None,
    ) -> Iterator[ProviderEvent]:
        """Stream one Bedrock step as provider events.

        :raises BedrockClientError: If the Bedrock call or stream fails.
        """
        extra_system = system_text(messages)
        prompt = f"{system_prompt}\n\n{extra_system}" if extra_system else system_prompt

        tool_blocks: dict[int, dict[str, Any]] = {}
        sources: dict[str, SourceRecord] = {}
        finish_reason = "end_turn"
        usage: dict[str, Any] = {}

        for event in self.client.converse_stream(
            messages=to_bedrock_messages(messages),
            model_id=self._config.chat_model,
            system_prompt=prompt,
            tool_config=tool_config,
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
            top_p=self._config.top_p,
        ):
            if "contentBlockStart" in event:
                block = event["contentBlockStart"]
                tool_use = block.get("start", {}).get("toolUse")
                if tool_use:
                    tool_blocks[block.get("contentBlockIndex", 0)] = {
                        "id": tool_use.get("toolUseId", ""),
                        "name": tool_use.get("name", ""),
                        "input": "",
                    }

            elif "contentBlockDelta" in event:
                block = event["contentBlockDelta"]
                delta = block.get("delta", {})
                if "text" in delta:
                    yield TextDelta(text=delta["text"])
                elif "toolUse" in delta:
                    pending = tool_blocks.get(block.get("contentBlockIndex", 0))
                    if pending is not None:
                        pending["input"] += delta["toolUse"].get("input", "")
                elif "citation" in delta:
                    source = _source_from_citation(delta["citation"])
                    if source is not None:
                        sources.setdefault(source.url, source)

            elif "contentBlockStop" in event:
                index = event["contentBlockStop"].get("contentBlockIndex", 0)
                pending = tool_blocks.pop(index, None)
                if pending is not None:
                    yield ToolCallRequest(
                        tool_call_id=pending["id"],
                        tool_name=pending["name"],
                        args=_parse_tool_input(pending["input"], pending["name"]),
                    )

            elif "messageStop" in event:
                finish_reason = event["messageStop"].get("stopReason", "end_turn")

            elif "metadata" in event:
                usage = event["metadata"].get("usage", {})

        if sources:
            logger.info(f"Sources found in step: count={len(sources)}")
        logger.debug(f"Bedrock step finished: stop_reason={finish_reason}, usage={usage}")

        yield StepFinish(finish_reason=finish_reason, sources=tuple(sources.values()), usage=usage)
