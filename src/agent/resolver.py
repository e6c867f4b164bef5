"""Resolution of pending gated tool calls against human decisions."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from src.agent.enums import Decision, MessageRole
from src.agent.executor import DENIED_RESULT, ToolExecutor, apply_tool_result
from src.agent.models import Message, PendingCall, ToolContext, ToolOutcome
from src.agent.utils.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedCall:
    """A pending call that received a decision, with the result recorded."""

    pending: PendingCall
    decision: Decision
    outcome: ToolOutcome


@dataclass(frozen=True)
class ResolutionOutcome:
    """Rewritten history plus what was and was not resolved."""

    messages: list[Message]
    resolved: tuple[ResolvedCall, ...] = ()
    unresolved: tuple[PendingCall, ...] = ()


def latest_decisions(messages: list[Message]) -> dict[str, Decision]:
    """Read the decision payload of the latest user message.

    :param messages: Conversation history.
    :returns: Mapping of tool_call_id to decision; empty if there is none.
    """
    for message in reversed(messages):
        if message.role == MessageRole.USER:
            return dict(message.decisions)
    return {}


def resolve_confirmations(  # noqa: PLR0913 - resolution needs every collaborator
    messages: list[Message],
    pending: tuple[PendingCall, ...],
    decisions: dict[str, Decision],
    registry: ToolRegistry,
    executor: ToolExecutor,
    context: ToolContext,
) -> ResolutionOutcome:
    """Apply human decisions to pending gated calls.

    Rejected calls get the denial sentinel without running the tool.
    Approved calls run through the executor and record its outcome. Calls
    with no decision are left untouched. Resolutions are applied in the
    order the calls were discovered, so identical input always produces the
    same history. When nothing is resolved the input list is returned as-is.

    :param messages: Conversation history. Not modified.
    :param pending: Pending calls, as returned by find_pending_calls.
    :param decisions: Mapping of tool_call_id to decision.
    :param registry: Tool registry for looking up approved tools.
    :param executor: Executor for approved tools.
    :param context: Conversation handle passed to tools that need it.
    :returns: Rewritten history and the resolved/unresolved calls.
    """
    updated = messages
    resolved: list[ResolvedCall] = []
    unresolved: list[PendingCall] = []

    for call in pending:
        decision = decisions.get(call.tool_call_id)

        if decision is None:
            unresolved.append(call)
            continue

        if decision == Decision.REJECT:
            logger.info(f"User rejected tool call: tool={call.tool_name}, id={call.tool_call_id}")
            outcome = ToolOutcome(result=DENIED_RESULT, is_error=True)
        else:
            logger.info(f"User approved tool call: tool={call.tool_name}, id={call.tool_call_id}")
            outcome = executor.execute(registry.get(call.tool_name), call.args, context)

        updated = apply_tool_result(updated, call.message_index, call.part_index, outcome.result)
        resolved.append(ResolvedCall(pending=call, decision=decision, outcome=outcome))

    if unresolved:
        logger.debug(f"Calls still awaiting a decision: ids={[c.tool_call_id for c in unresolved]}")

    return ResolutionOutcome(
        messages=updated,
        resolved=tuple(resolved),
        unresolved=tuple(unresolved),
    )
