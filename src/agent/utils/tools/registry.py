"""Tool registry for the AI agent module."""

import logging
from collections.abc import Iterable
from typing import Any

from src.agent.enums import ToolErrorType
from src.agent.exceptions import ConfigurationError, DuplicateToolError, ToolNotFoundError
from src.agent.models import Message, ToolDef
from src.agent.tools import CONFIRMATION_REQUIRED, get_builtin_tools

logger = logging.getLogger(__name__)


def _is_unknown_tool_result(result: Any) -> bool:
    return isinstance(result, dict) and result.get("error_type") == ToolErrorType.UNKNOWN_TOOL


def create_default_registry() -> "ToolRegistry":
    """Create a tool registry with all built-in tools registered.

    This is the recommended way to get a fully configured registry
    with all available tools.

    :returns: ToolRegistry instance with all tools registered.
    :raises ConfigurationError: If the built-in declarations are inconsistent.
    """
    registry = ToolRegistry(confirmation_required=CONFIRMATION_REQUIRED)

    for tool in get_builtin_tools():
        registry.register(tool)

    registry.validate()

    logger.info(
        f"Created default registry with {len(registry)} tools, "
        f"gated={sorted(registry.confirmation_required)}"
    )
    return registry


class ToolRegistry:
    """Central registry for all available tools.

    Manages tool registration and lookup. Each tool must have a unique name.
    Tools named in confirmation_required are gated: their handler only runs
    after a human approves the call. All other tools execute as soon as the
    model calls them.
    """

    def __init__(self, confirmation_required: Iterable[str] = ()) -> None:
        """Initialise an empty tool registry.

        :param confirmation_required: Names of tools gated behind human approval.
        """
        self._tools: dict[str, ToolDef] = {}
        self.confirmation_required: frozenset[str] = frozenset(confirmation_required)

    def register(self, tool: ToolDef) -> None:
        """Register a tool in the registry.

        :param tool: Tool definition to register.
        :raises DuplicateToolError: If a tool with the same name already exists.
        """
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)

        self._tools[tool.name] = tool
        logger.debug(
            f"Registered tool: name={tool.name}, gated={self.requires_confirmation(tool.name)}"
        )

    def get(self, name: str) -> ToolDef:
        """Retrieve a tool by name.

        :param name: Name of the tool to retrieve.
        :returns: The tool definition.
        :raises ToolNotFoundError: If the tool is not found.
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def requires_confirmation(self, name: str) -> bool:
        """Check whether a tool is gated behind human approval.

        :param name: Tool name.
        :returns: True if the tool needs a decision before it runs.
        """
        return name in self.confirmation_required

    def validate(self) -> None:
        """Validate the registry declarations.

        This should be called after all tools are registered to catch
        configuration errors before the agent starts.

        :raises ConfigurationError: If a gated name is not registered, or a
            tool without a handler is not gated.
        """
        unknown_gated = sorted(self.confirmation_required - self._tools.keys())
        if unknown_gated:
            raise ConfigurationError(f"Gated tools are not registered: {unknown_gated}")

        for tool in self._tools.values():
            if tool.handler is None and not self.requires_confirmation(tool.name):
                raise ConfigurationError(
                    f"Tool '{tool.name}' has no handler and is not confirmation-gated"
                )

        logger.debug(f"Registry validated: tools={len(self._tools)}")

    def validate_history(self, messages: list[Message]) -> None:
        """Check that every tool referenced in history is registered.

        Invocations the model made of tools that never existed are recorded
        with an unknown-tool error result and are skipped here.

        :param messages: Conversation history.
        :raises ToolNotFoundError: If history references an unknown tool.
        """
        for message in messages:
            for part in message.tool_invocations():
                if part.tool_name not in self._tools and not _is_unknown_tool_result(part.result):
                    logger.error(
                        f"History references unknown tool: tool={part.tool_name}, "
                        f"message={message.id}"
                    )
                    raise ToolNotFoundError(part.tool_name)

    def to_bedrock_tool_config(self) -> dict[str, Any] | None:
        """Generate Bedrock toolConfig for all registered tools.

        :returns: Bedrock-compatible toolConfig dictionary, or None if empty.
        """
        if not self._tools:
            return None
        return {"tools": [tool.to_bedrock_tool_spec() for tool in self._tools.values()]}

    def __len__(self) -> int:
        """Return the number of registered tools."""
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools
