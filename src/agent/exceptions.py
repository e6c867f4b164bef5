"""Custom exceptions for the AI agent module."""


class AgentError(Exception):
    """Base exception for agent-related errors."""


class ConfigurationError(AgentError):
    """Raised for misconfiguration detected before a turn starts streaming."""


class ToolRegistryError(ConfigurationError):
    """Error related to tool registration or lookup."""


class DuplicateToolError(ToolRegistryError):
    """Raised when attempting to register a tool with a duplicate name."""

    def __init__(self, tool_name: str) -> None:
        """Initialise DuplicateToolError.

        :param tool_name: Name of the duplicate tool.
        """
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is already registered")


class ToolNotFoundError(ToolRegistryError):
    """Raised when a requested tool is not found in the registry."""

    def __init__(self, tool_name: str) -> None:
        """Initialise ToolNotFoundError.

        :param tool_name: Name of the missing tool.
        """
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' not found in registry")


class BedrockClientError(AgentError):
    """Error related to AWS Bedrock API calls."""


class ToolExecutionError(AgentError):
    """Raised when a tool execution fails."""

    def __init__(self, tool_name: str, error: str) -> None:
        """Initialise ToolExecutionError.

        :param tool_name: Name of the tool that failed.
        :param error: Error message from the tool.
        """
        self.tool_name = tool_name
        self.error = error
        super().__init__(f"Tool '{tool_name}' execution failed: {error}")


class ToolTimeoutError(ToolExecutionError):
    """Raised when a tool execution exceeds its timeout."""

    def __init__(self, tool_name: str, timeout_seconds: float) -> None:
        """Initialise ToolTimeoutError.

        :param tool_name: Name of the tool that timed out.
        :param timeout_seconds: The timeout that was exceeded.
        """
        self.timeout_seconds = timeout_seconds
        super().__init__(tool_name, f"Timed out after {timeout_seconds}s")
