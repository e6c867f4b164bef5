"""Tool handlers for the AI agent."""

from src.agent.models import ToolDef
from src.agent.tools.conversation import get_conversation_tools
from src.agent.tools.local_time import get_local_time_tools
from src.agent.tools.weather import GET_WEATHER_TOOL, get_weather_tools

# Tools whose handler only runs after a human approves the call
CONFIRMATION_REQUIRED: frozenset[str] = frozenset({GET_WEATHER_TOOL.name})


def get_builtin_tools() -> list[ToolDef]:
    """Get every built-in tool definition.

    :returns: List of ToolDef instances.
    """
    return [*get_conversation_tools(), *get_local_time_tools(), *get_weather_tools()]


__all__ = [
    "CONFIRMATION_REQUIRED",
    "get_builtin_tools",
    "get_conversation_tools",
    "get_local_time_tools",
    "get_weather_tools",
]
