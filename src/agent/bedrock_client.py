"""AWS Bedrock client for the AI agent module."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from src.agent.exceptions import BedrockClientError

if TYPE_CHECKING:
    from mypy_boto3_bedrock_runtime import BedrockRuntimeClient

logger = logging.getLogger(__name__)

# Model ID aliases - use these instead of full Bedrock model IDs
MODEL_ALIASES: dict[str, str] = {
    "haiku": "global.anthropic.claude-haiku-4-5-20251001-v1:0",
    "sonnet": "global.anthropic.claude-sonnet-4-5-20250929-v1:0",
    "opus": "global.anthropic.claude-opus-4-5-20251101-v1:0",
}

# Valid model alias options
VALID_MODEL_OPTIONS = frozenset(MODEL_ALIASES.keys())

# Exception events Bedrock may emit inside a ConverseStream body
STREAM_EXCEPTION_KEYS = (
    "internalServerException",
    "modelStreamErrorException",
    "validationException",
    "throttlingException",
    "serviceUnavailableException",
)


def resolve_model_id(model_id: str) -> str:
    """Resolve a model alias to a full model ID.

    :param model_id: Model alias (haiku, sonnet, opus).
    :returns: Full Bedrock model ID.
    :raises ValueError: If model_id is not a valid alias.
    """
    model_lower = model_id.lower()
    if model_lower not in MODEL_ALIASES:
        valid_options = ", ".join(sorted(VALID_MODEL_OPTIONS))
        raise ValueError(f"Invalid model '{model_id}'. Must be one of: {valid_options}")
    return MODEL_ALIASES[model_lower]


def _client_error_to_bedrock_error(error: ClientError) -> BedrockClientError:
    error_code = error.response.get("Error", {}).get("Code", "Unknown")
    error_message = error.response.get("Error", {}).get("Message", str(error))
    logger.exception(f"Bedrock API error: code={error_code}, message={error_message}")
    return BedrockClientError(f"Bedrock API call failed: {error_code} - {error_message}")


class BedrockClient:
    """Client for the AWS Bedrock ConverseStream API.

    Provides a typed interface for streaming Claude responses with tool use.
    This is a low-level client that does not manage model selection - callers
    must specify the model for each request.
    """

    def __init__(
        self,
        region_name: str | None = None,
    ) -> None:
        """Initialise the Bedrock client.

        :param region_name: AWS region. Defaults to AWS_REGION env var or eu-west-2.
        """
        self.region_name = region_name or os.environ.get("AWS_REGION", "eu-west-2")

        self._client: BedrockRuntimeClient = boto3.client(
            "bedrock-runtime",
            region_name=self.region_name,
        )

        logger.debug(f"Initialised BedrockClient: region={self.region_name}")

    def converse_stream(  # noqa: PLR0913 - Bedrock API has multiple config options
        self,
        messages: list[dict[str, Any]],
        model_id: str,
        system_prompt: str | None = None,
        tool_config: dict[str, Any] | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        top_p: float | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Invoke the Bedrock ConverseStream API and yield its raw events.

        :param messages: Conversation messages in Bedrock format.
        :param model_id: Model alias (haiku, sonnet, opus) to use for this request.
        :param system_prompt: Optional system prompt.
        :param tool_config: Optional tool configuration for tool use.
        :param max_tokens: Maximum tokens in response.
        :param temperature: Sampling temperature.
        :param top_p: Optional nucleus sampling cutoff.
        :returns: Iterator over stream events.
        :raises BedrockClientError: If the API call or the stream fails.
        :raises ValueError: If model_id is not a valid alias.
        """
        effective_model = resolve_model_id(model_id)
        inference_config: dict[str, Any] = {
            "maxTokens": max_tokens,
            "temperature": temperature,
        }
        if top_p is not None:
            inference_config["topP"] = top_p

        request_params: dict[str, Any] = {
            "modelId": effective_model,
            "messages": messages,
            "inferenceConfig": inference_config,
        }

        if system_prompt:
            request_params["system"] = [{"text": system_prompt}]

        if tool_config:
            request_params["toolConfig"] = tool_config

        logger.debug(
            f"Calling Bedrock ConverseStream: model={effective_model}, "
            f"messages_count={len(messages)}"
        )
        start_time = time.perf_counter()

        try:
            response = self._client.converse_stream(**request_params)
        except ClientError as e:
            raise _client_error_to_bedrock_error(e) from e
        except BotoCoreError as e:
            logger.exception("Bedrock transport failure")
            raise BedrockClientError(f"Bedrock API call failed: {e}") from e

        try:
            for event in response.get("stream", []):
                for key in STREAM_EXCEPTION_KEYS:
                    if key in event:
                        message = event[key].get("message", key)
                        logger.error(f"Bedrock stream error: type={key}, message={message}")
                        raise BedrockClientError(f"Bedrock stream failed: {key} - {message}")
                yield event
        except ClientError as e:
            raise _client_error_to_bedrock_error(e) from e
        except BotoCoreError as e:
            logger.exception("Bedrock stream transport failure")
            raise BedrockClientError(f"Bedrock stream failed: {e}") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(f"Bedrock stream complete: latency_ms={latency_ms}")
