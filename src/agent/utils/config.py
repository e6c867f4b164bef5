"""Centralised configuration for the agent module.

All agent configuration values are defined here as the single source of truth.
Use DEFAULT_AGENT_CONFIG for the standard configuration, or instantiate
AgentConfig with custom values for testing. Deployment values are read from
the environment by AgentSettings and converted with to_agent_config().
"""

from dataclasses import dataclass
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.agent.bedrock_client import VALID_MODEL_OPTIONS


@dataclass(frozen=True)
class AgentConfig:
    """Centralised configuration for the agent module.

    :param max_steps: Maximum number of model steps per turn.
    :param chat_model: Model alias for chat/tool execution.
    :param max_tokens: Maximum tokens in a single model response.
    :param temperature: Sampling temperature.
    :param top_p: Nucleus sampling cutoff.
    :param tool_timeout_seconds: Maximum seconds for a single tool execution.
    :param max_tool_workers: Threads available for tool execution. A timed-out
        handler keeps its thread until it returns.
    """

    # Runner settings
    max_steps: int = 10
    chat_model: str = "sonnet"
    max_tokens: int = 8192
    temperature: float = 1.0
    top_p: float = 0.95

    # Tool execution
    tool_timeout_seconds: float = 30.0
    max_tool_workers: int = 8


# Default configuration singleton
DEFAULT_AGENT_CONFIG = AgentConfig()


class AgentSettings(BaseSettings):
    """Environment configuration for the agent service.

    All settings are loaded from environment variables with the AGENT_ prefix.

    :param aws_region: AWS region for the Bedrock runtime client.
    :param chat_model: Model alias used for chat.
    :param max_steps: Maximum number of model steps per turn.
    :param max_tokens: Maximum tokens in a single model response.
    :param tool_timeout_seconds: Maximum seconds for a single tool execution.
    :param database_url: SQLAlchemy URL for conversation storage. When unset,
        conversations are kept in memory.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    aws_region: str = Field(default="eu-west-2", description="AWS region for Bedrock")
    chat_model: str = Field(default=DEFAULT_AGENT_CONFIG.chat_model, description="Model alias")
    max_steps: int = Field(default=DEFAULT_AGENT_CONFIG.max_steps, ge=1, le=50)
    max_tokens: int = Field(default=DEFAULT_AGENT_CONFIG.max_tokens, ge=256, le=65536)
    tool_timeout_seconds: float = Field(
        default=DEFAULT_AGENT_CONFIG.tool_timeout_seconds,
        gt=0,
        le=300,
    )
    database_url: str | None = Field(default=None, description="Conversation store URL")

    @field_validator("chat_model")
    @classmethod
    def validate_chat_model(cls, v: str) -> str:
        """Validate that the chat model is a known alias.

        :param v: Raw model alias from environment.
        :returns: The lower-cased alias.
        :raises ValueError: If the alias is unknown.
        """
        alias = v.strip().lower()
        if alias not in VALID_MODEL_OPTIONS:
            valid_options = ", ".join(sorted(VALID_MODEL_OPTIONS))
            raise ValueError(f"Invalid model '{v}'. Must be one of: {valid_options}")
        return alias

    def to_agent_config(self) -> AgentConfig:
        """Build the runtime agent configuration from these settings.

        :returns: AgentConfig with environment overrides applied.
        """
        return AgentConfig(
            max_steps=self.max_steps,
            chat_model=self.chat_model,
            max_tokens=self.max_tokens,
            tool_timeout_seconds=self.tool_timeout_seconds,
        )


@lru_cache
def get_agent_settings() -> AgentSettings:
    """Get cached agent settings.

    Settings are loaded once and cached for the lifetime of the process.

    :returns: Configured AgentSettings instance.
    """
    return AgentSettings()
