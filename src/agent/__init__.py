"""AI Agent module for streaming, tool-using chat conversations.

This module provides a chat agent built on AWS Bedrock ConverseStream with
structured tool calling, human confirmation for gated tools, and a bounded
multi-step generation loop.
"""

from src.agent.bedrock_client import MODEL_ALIASES, BedrockClient, resolve_model_id
from src.agent.composer import DEFAULT_SYSTEM_PROMPT, StreamComposer, Turn
from src.agent.enums import Decision, MessageRole, ToolInvocationState, TurnState
from src.agent.exceptions import (
    AgentError,
    BedrockClientError,
    ConfigurationError,
    DuplicateToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolRegistryError,
    ToolTimeoutError,
)
from src.agent.executor import ToolExecutor
from src.agent.models import Message, ToolCall, ToolDef, TurnResult, create_user_message
from src.agent.provider import BedrockModelProvider, ModelProvider
from src.agent.session import AgentSession, SessionManager, create_session_manager
from src.agent.store import InMemoryMessageStore, MessageStore, SQLMessageStore
from src.agent.utils.config import DEFAULT_AGENT_CONFIG, AgentConfig, AgentSettings
from src.agent.utils.tools.registry import ToolRegistry, create_default_registry

__all__ = [
    "DEFAULT_AGENT_CONFIG",
    "DEFAULT_SYSTEM_PROMPT",
    "MODEL_ALIASES",
    "AgentConfig",
    "AgentError",
    "AgentSession",
    "AgentSettings",
    "BedrockClient",
    "BedrockClientError",
    "BedrockModelProvider",
    "ConfigurationError",
    "Decision",
    "DuplicateToolError",
    "InMemoryMessageStore",
    "Message",
    "MessageRole",
    "MessageStore",
    "ModelProvider",
    "SQLMessageStore",
    "SessionManager",
    "StreamComposer",
    "ToolCall",
    "ToolDef",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolInvocationState",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolRegistryError",
    "ToolTimeoutError",
    "Turn",
    "TurnResult",
    "TurnState",
    "create_default_registry",
    "create_session_manager",
    "create_user_message",
    "resolve_model_id",
]
