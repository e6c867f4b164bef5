"""Tool execution with timeout protection and error capture.

Tool failures never propagate: argument validation errors, handler
exceptions and timeouts are all converted into an error-shaped result value
that is written into history like any other result.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from src.agent.enums import ToolErrorType
from src.agent.exceptions import ToolExecutionError, ToolTimeoutError
from src.agent.models import Message, ToolContext, ToolDef, ToolInvocationPart, ToolOutcome
from src.agent.utils.config import DEFAULT_AGENT_CONFIG, AgentConfig

logger = logging.getLogger(__name__)

# Result recorded when a human rejects a gated tool call
DENIED_RESULT = "Error: User denied access to tool execution"

# Result recorded when a human approves a confirmation-only tool (no handler)
APPROVED_RESULT = "Yes, confirmed."


def error_result(error: str, error_type: ToolErrorType) -> dict[str, Any]:
    """Build the error-shaped sentinel stored as a failed tool's result.

    :param error: Error description.
    :param error_type: Category of the failure.
    :returns: Error result dictionary.
    """
    return {"error": error, "error_type": str(error_type)}


def is_error_result(result: Any) -> bool:
    """Check whether a recorded result represents a failure or a denial.

    :param result: Recorded tool result.
    :returns: True for error sentinels and the denial sentinel.
    """
    if result == DENIED_RESULT:
        return True
    return isinstance(result, dict) and "error" in result


def apply_tool_result(
    messages: list[Message],
    message_index: int,
    part_index: int,
    result: Any,
) -> list[Message]:
    """Write a result into a tool invocation, copy-on-write.

    Only the touched message and part are copied; every other message is
    shared with the input list. Already-resolved invocations are never
    altered, in which case the input list is returned unchanged.

    :param messages: Conversation history.
    :param message_index: Index of the message holding the invocation.
    :param part_index: Index of the invocation within the message.
    :param result: Result value to record.
    :returns: New history list with the invocation in the RESULT state.
    :raises ValueError: If the addressed part is not a tool invocation.
    """
    message = messages[message_index]
    part = message.parts[part_index]
    if not isinstance(part, ToolInvocationPart):
        raise ValueError(
            f"Part is not a tool invocation: message={message.id}, part_index={part_index}"
        )
    if part.is_resolved:
        return messages

    updated = list(messages)
    updated[message_index] = message.replace_part(part_index, part.with_result(result))
    return updated


def _normalise_result(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result


class PendingExecution:
    """Handle for a tool execution that may still be running."""

    def __init__(
        self,
        tool_name: str,
        future: concurrent.futures.Future[Any] | None,
        timeout_seconds: float,
        outcome: ToolOutcome | None = None,
    ) -> None:
        """Initialise the handle.

        :param tool_name: Name of the tool being executed.
        :param future: Future of the running handler, or None if already settled.
        :param timeout_seconds: Maximum seconds to wait for the handler.
        :param outcome: Settled outcome when no handler needed to run.
        """
        self.tool_name = tool_name
        self._future = future
        self._timeout_seconds = timeout_seconds
        self._outcome = outcome

    def outcome(self) -> ToolOutcome:
        """Wait for the handler and return its outcome.

        :returns: Result value, or an error sentinel if the handler failed.
        """
        if self._outcome is not None:
            return self._outcome

        try:
            result = self._wait()
        except ToolTimeoutError as e:
            self._outcome = ToolOutcome(
                result=error_result(str(e), ToolErrorType.TIMEOUT), is_error=True
            )
        except ToolExecutionError as e:
            self._outcome = ToolOutcome(
                result=error_result(e.error, ToolErrorType.EXECUTION), is_error=True
            )
        else:
            logger.debug(f"Tool executed successfully: tool={self.tool_name}")
            self._outcome = ToolOutcome(result=_normalise_result(result))

        return self._outcome

    def _wait(self) -> Any:
        """Wait for the running handler.

        :returns: The handler's return value.
        :raises ToolTimeoutError: If the handler exceeds the timeout.
        :raises ToolExecutionError: If the handler raises.
        """
        if self._future is None:
            raise RuntimeError(f"Execution handle has no outcome: tool={self.tool_name}")

        try:
            return self._future.result(timeout=self._timeout_seconds)
        except concurrent.futures.TimeoutError:
            logger.warning(
                f"Tool execution timed out: tool={self.tool_name}, "
                f"timeout={self._timeout_seconds}s"
            )
            if not self._future.cancel():
                logger.warning(
                    "Timed-out tool still running, worker occupied until it returns: "
                    f"tool={self.tool_name}"
                )
            raise ToolTimeoutError(self.tool_name, self._timeout_seconds)
        except Exception as e:
            logger.exception(f"Tool execution failed: tool={self.tool_name}")
            raise ToolExecutionError(self.tool_name, str(e)) from e


class ToolExecutor:
    """Runs tool handlers on a worker pool with timeout protection."""

    def __init__(self, config: AgentConfig = DEFAULT_AGENT_CONFIG) -> None:
        """Initialise the executor.

        :param config: Agent configuration. Defaults to DEFAULT_AGENT_CONFIG.
        """
        self._config = config
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=config.max_tool_workers,
            thread_name_prefix="tool",
        )

    def submit(
        self,
        tool: ToolDef,
        args: dict[str, Any],
        context: ToolContext,
    ) -> PendingExecution:
        """Start a tool execution without waiting for it.

        Used for auto-executing tools so they run while the model keeps
        streaming. Argument validation happens synchronously.

        :param tool: Tool definition to execute.
        :param args: Arguments supplied by the model.
        :param context: Conversation handle for tools that need it.
        :returns: Handle whose outcome() waits for the result.
        """
        timeout = self._config.tool_timeout_seconds

        if tool.handler is None:
            logger.info(f"Confirmation-only tool acknowledged: tool={tool.name}")
            return PendingExecution(tool.name, None, timeout, ToolOutcome(result=APPROVED_RESULT))

        try:
            validated_args = tool.args_model(**args)
        except ValidationError as e:
            logger.warning(f"Tool argument validation failed: tool={tool.name}, error={e}")
            outcome = ToolOutcome(
                result=error_result(f"Invalid arguments: {e}", ToolErrorType.VALIDATION),
                is_error=True,
            )
            return PendingExecution(tool.name, None, timeout, outcome)

        if tool.needs_context:
            future = self._pool.submit(tool.handler, validated_args, context)
        else:
            future = self._pool.submit(tool.handler, validated_args)

        logger.debug(f"Tool submitted: tool={tool.name}")
        return PendingExecution(tool.name, future, timeout)

    def execute(
        self,
        tool: ToolDef,
        args: dict[str, Any],
        context: ToolContext,
    ) -> ToolOutcome:
        """Execute a tool and wait for its outcome.

        :param tool: Tool definition to execute.
        :param args: Arguments supplied by the model.
        :param context: Conversation handle for tools that need it.
        :returns: Result value, or an error sentinel if execution failed.
        """
        return self.submit(tool, args, context).outcome()

    def shutdown(self) -> None:
        """Stop the worker pool, letting running tools finish."""
        self._pool.shutdown(wait=True)
