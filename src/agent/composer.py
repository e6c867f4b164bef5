"""Stream composition for one conversation turn.

The StreamComposer drives the bounded multi-step generation loop and merges
three sources into one ordered event stream: model text, tool calls and
their results, and message-level annotations. It is a synchronous
generator; callers consume events incrementally and may stop early.
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from src.agent.enums import Decision, MessageRole, ToolErrorType, TurnState
from src.agent.exceptions import BedrockClientError
from src.agent.executor import PendingExecution, ToolExecutor, apply_tool_result, error_result
from src.agent.models import (
    AnnotationEvent,
    ErrorEvent,
    FinishEvent,
    Message,
    PendingCall,
    PendingToolAction,
    SourceRecord,
    StartEvent,
    StreamEvent,
    TextEvent,
    TextPart,
    ToolCall,
    ToolCallEvent,
    ToolContext,
    ToolInvocationPart,
    ToolResultEvent,
    generate_id,
)
from src.agent.provider import ModelProvider, StepFinish, TextDelta, ToolCallRequest
from src.agent.resolver import ResolutionOutcome, resolve_confirmations
from src.agent.scanner import find_pending_calls
from src.agent.utils.config import DEFAULT_AGENT_CONFIG, AgentConfig
from src.agent.utils.formatting import generate_action_summary
from src.agent.utils.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# Default system prompt for the agent (use {current_date} placeholder)
DEFAULT_SYSTEM_PROMPT = """You are a helpful assistant that always responds in well-formatted Markdown.

Today's date is {current_date}.

Formatting:
- Use headings (#, ##, ###) to organise longer answers
- Use bulleted or numbered lists, and numbered lists for sequential steps
- Put code in fenced blocks with a language, e.g. ```python
- Use tables for comparative data and [link text](URL) for links, never bare URLs

Tools:
1. Use the most appropriate tool when it helps answer the question
2. Some tools need the user's approval. If a tool result says the user denied it, \
acknowledge that and do not call the same tool again for that request
3. Handle tool errors gracefully and explain any issues to the user

Begin with a direct answer when applicable. Be concise but complete."""

# Annotation key for provenance sources attached to a message
SOURCES_ANNOTATION_KEY = "sources"

# Finish reasons reported in the FinishEvent
FINISH_STOP = "stop"
FINISH_LENGTH = "length"
FINISH_CONTENT_FILTER = "content-filter"
FINISH_MAX_STEPS = "max-steps"
FINISH_AWAITING = "awaiting-confirmation"


@dataclass
class Turn:
    """Mutable state of one in-flight turn.

    The message list is replaced (never mutated) whenever history changes,
    so earlier snapshots held elsewhere stay valid.
    """

    conversation_id: str
    messages: list[Message]
    decisions: dict[str, Decision] = field(default_factory=dict)
    state: TurnState = TurnState.GENERATING
    steps_taken: int = 0
    assistant_index: int | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    pending: list[PendingToolAction] = field(default_factory=list)
    sources: dict[str, SourceRecord] = field(default_factory=dict)
    error: str | None = None
    text_buffer: list[str] = field(default_factory=list)
    outstanding: list[tuple[int, ToolInvocationPart, PendingExecution]] = field(
        default_factory=list
    )

    @property
    def assistant_message(self) -> Message | None:
        """The assistant message produced by this turn, if started."""
        if self.assistant_index is None:
            return None
        return self.messages[self.assistant_index]

    def finalized_messages(self) -> list[Message]:
        """History to persist: drops an assistant message that never got content.

        :returns: Message list.
        """
        message = self.assistant_message
        if message is not None and not message.parts and not message.annotations:
            return [m for i, m in enumerate(self.messages) if i != self.assistant_index]
        return self.messages

    def context(self) -> ToolContext:
        """Build the explicit conversation handle for tools.

        :returns: Snapshot of the conversation for tool handlers.
        """
        return ToolContext(conversation_id=self.conversation_id, messages=tuple(self.messages))


class StreamComposer:
    """Runs the generation loop for a turn and yields the merged event stream.

    Loop states: GENERATING while the model streams, TOOL_PENDING while auto
    tools finish at the step boundary, then one of DONE, FAILED or
    AWAITING_CONFIRMATION. AWAITING_CONFIRMATION is a legitimate pause: a
    gated call has no decision yet and the model is not re-prompted.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        provider: ModelProvider,
        executor: ToolExecutor,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        config: AgentConfig = DEFAULT_AGENT_CONFIG,
    ) -> None:
        """Initialise the composer.

        :param registry: Tool registry with the gated tool set.
        :param provider: Model provider streaming one step at a time.
        :param executor: Executor for auto-executing and approved tools.
        :param system_prompt: System prompt for the agent.
        :param config: Agent configuration. Defaults to DEFAULT_AGENT_CONFIG.
        """
        self.registry = registry
        self.provider = provider
        self.executor = executor
        self.system_prompt = system_prompt
        self._config = config

    def run(self, turn: Turn) -> Iterator[StreamEvent]:
        """Run the turn, yielding events as they become known.

        The stream always ends with a FinishEvent or an ErrorEvent. If the
        consumer stops iterating early, no further model steps run; tools
        already executing are joined and their results kept in history.

        :param turn: Turn state. Updated in place as the turn progresses.
        :returns: Iterator of stream events.
        """
        try:
            yield from self._run(turn)
        finally:
            self._join_outstanding(turn)

    def _run(self, turn: Turn) -> Iterator[StreamEvent]:
        resolution = self._resolve(turn)
        yield from self._result_events(turn, resolution)

        if resolution.unresolved:
            logger.info(
                f"Turn blocked on pending confirmations: conversation={turn.conversation_id}, "
                f"pending={len(resolution.unresolved)}"
            )
            yield self._finish(
                turn, TurnState.AWAITING_CONFIRMATION, resolution.unresolved, FINISH_AWAITING
            )
            return

        assistant = Message(role=MessageRole.ASSISTANT)
        turn.messages = [*turn.messages, assistant]
        turn.assistant_index = len(turn.messages) - 1
        yield StartEvent(message_id=assistant.id)

        logger.info(
            f"Starting generation: conversation={turn.conversation_id}, "
            f"max_steps={self._config.max_steps}"
        )

        while True:
            turn.state = TurnState.GENERATING
            try:
                finish, step_call_count = yield from self._stream_step(turn)
            except BedrockClientError as e:
                logger.exception(f"Generation failed: conversation={turn.conversation_id}")
                yield self._fail(turn, str(e))
                return
            except Exception as e:
                logger.exception(
                    f"Provider stream raised unexpectedly: conversation={turn.conversation_id}, "
                    f"error_type={type(e).__name__}"
                )
                yield self._fail(turn, f"Generation failed: {type(e).__name__}: {e}")
                return

            turn.steps_taken += 1
            logger.debug(
                f"Step {turn.steps_taken} finished: reason={finish.finish_reason}, "
                f"tool_calls={step_call_count}"
            )

            if turn.outstanding:
                turn.state = TurnState.TOOL_PENDING
                yield from self._collect_outstanding(turn)

            resolution = self._resolve(turn)
            yield from self._result_events(turn, resolution)

            if resolution.unresolved:
                yield from self._annotate(turn)
                yield self._finish(
                    turn, TurnState.AWAITING_CONFIRMATION, resolution.unresolved, FINISH_AWAITING
                )
                return

            if step_call_count == 0:
                finish_reason = FINISH_STOP
                if finish.finish_reason == "max_tokens":
                    finish_reason = FINISH_LENGTH
                elif finish.is_safety_stop:
                    logger.warning(
                        f"Generation stopped by safety filter: reason={finish.finish_reason}, "
                        f"conversation={turn.conversation_id}"
                    )
                    finish_reason = FINISH_CONTENT_FILTER
                break

            if turn.steps_taken >= self._config.max_steps:
                logger.warning(
                    f"Step budget reached: max_steps={self._config.max_steps}, "
                    f"conversation={turn.conversation_id}"
                )
                finish_reason = FINISH_MAX_STEPS
                break

        yield from self._annotate(turn)
        yield self._finish(turn, TurnState.DONE, (), finish_reason)

    def _stream_step(self, turn: Turn) -> Generator[StreamEvent, None, tuple[StepFinish, int]]:
        """Stream one model step.

        :returns: The StepFinish and the number of tool calls the model made.
        """
        finish = StepFinish(finish_reason="end_turn")
        call_count = 0
        prompt = self.system_prompt.format(current_date=date.today().isoformat())

        for event in self.provider.stream_step(
            prompt, turn.messages, self.registry.to_bedrock_tool_config()
        ):
            if isinstance(event, TextDelta):
                if event.text:
                    turn.text_buffer.append(event.text)
                    yield TextEvent(text=event.text)

            elif isinstance(event, ToolCallRequest):
                call_count += 1
                self._flush_text(turn)
                part = self._record_call(turn, event)
                yield ToolCallEvent(
                    tool_call_id=part.tool_call_id,
                    tool_name=part.tool_name,
                    args=part.args,
                )
                if part.is_resolved:
                    yield from self._result_events_for_parts(turn, [part])

            elif isinstance(event, StepFinish):
                finish = event
                for source in event.sources:
                    turn.sources.setdefault(source.url, source)

        self._flush_text(turn)
        return finish, call_count

    def _record_call(self, turn: Turn, request: ToolCallRequest) -> ToolInvocationPart:
        """Append a tool invocation to the assistant message.

        Auto tools are submitted for execution straight away. Unknown tools
        are recorded with an error result so the model can recover.
        """
        tool_call_id = request.tool_call_id
        if not tool_call_id or self._call_id_exists(turn, tool_call_id):
            tool_call_id = generate_id()
            logger.warning(
                f"Replaced missing or duplicate tool call id: "
                f"original={request.tool_call_id!r}, new={tool_call_id}"
            )

        part = ToolInvocationPart(
            tool_call_id=tool_call_id,
            tool_name=request.tool_name,
            args=request.args,
        )
        logger.info(f"Tool call requested: tool={part.tool_name}, id={part.tool_call_id}")

        if request.tool_name not in self.registry:
            logger.error(f"Model requested unknown tool: {request.tool_name}")
            part = part.with_result(
                error_result(f"Unknown tool: {request.tool_name}", ToolErrorType.UNKNOWN_TOOL)
            )
            self._append_part(turn, part)
            return part

        part_index = self._append_part(turn, part)

        if not self.registry.requires_confirmation(part.tool_name):
            execution = self.executor.submit(
                self.registry.get(part.tool_name), part.args, turn.context()
            )
            turn.outstanding.append((part_index, part, execution))

        return part

    def _collect_outstanding(self, turn: Turn) -> Iterator[StreamEvent]:
        """Wait for auto tools in call order and write their results."""
        while turn.outstanding:
            part_index, part, execution = turn.outstanding.pop(0)
            outcome = execution.outcome()
            turn.messages = apply_tool_result(
                turn.messages, self._require_assistant(turn), part_index, outcome.result
            )
            turn.tool_calls.append(
                ToolCall(
                    tool_call_id=part.tool_call_id,
                    tool_name=part.tool_name,
                    args=part.args,
                    output=outcome.result,
                    is_error=outcome.is_error,
                )
            )
            yield ToolResultEvent(
                tool_call_id=part.tool_call_id,
                result=outcome.result,
                is_error=outcome.is_error,
            )

    def _fail(self, turn: Turn, message: str) -> ErrorEvent:
        """Keep flushed content and finished tools, then mark the turn failed."""
        self._flush_text(turn)
        self._join_outstanding(turn)
        turn.state = TurnState.FAILED
        turn.error = message
        return ErrorEvent(message=message)

    def _join_outstanding(self, turn: Turn) -> None:
        """Write results of tools still running when the turn ends early."""
        for _ in self._collect_outstanding(turn):
            pass

    def _resolve(self, turn: Turn) -> ResolutionOutcome:
        pending = find_pending_calls(turn.messages, self.registry.confirmation_required)
        if not pending:
            return ResolutionOutcome(messages=turn.messages)

        resolution = resolve_confirmations(
            turn.messages,
            pending,
            turn.decisions,
            self.registry,
            self.executor,
            turn.context(),
        )
        turn.messages = resolution.messages
        for resolved in resolution.resolved:
            turn.tool_calls.append(
                ToolCall(
                    tool_call_id=resolved.pending.tool_call_id,
                    tool_name=resolved.pending.tool_name,
                    args=resolved.pending.args,
                    output=resolved.outcome.result,
                    is_error=resolved.outcome.is_error,
                )
            )
        return resolution

    def _result_events(self, turn: Turn, resolution: ResolutionOutcome) -> Iterator[StreamEvent]:
        for resolved in resolution.resolved:
            yield ToolResultEvent(
                tool_call_id=resolved.pending.tool_call_id,
                result=resolved.outcome.result,
                is_error=resolved.outcome.is_error,
            )

    def _result_events_for_parts(
        self, turn: Turn, parts: list[ToolInvocationPart]
    ) -> Iterator[StreamEvent]:
        for part in parts:
            turn.tool_calls.append(
                ToolCall(
                    tool_call_id=part.tool_call_id,
                    tool_name=part.tool_name,
                    args=part.args,
                    output=part.result,
                    is_error=True,
                )
            )
            yield ToolResultEvent(tool_call_id=part.tool_call_id, result=part.result, is_error=True)

    def _annotate(self, turn: Turn) -> Iterator[StreamEvent]:
        """Attach collected sources to the finished message and emit them once."""
        message = turn.assistant_message
        if message is None or not turn.sources:
            return

        annotation: dict[str, Any] = {
            SOURCES_ANNOTATION_KEY: [
                source.model_dump(mode="json") for source in turn.sources.values()
            ]
        }
        logger.info(f"Attaching sources annotation: count={len(turn.sources)}")
        updated = list(turn.messages)
        updated[self._require_assistant(turn)] = message.model_copy(
            update={"annotations": [*message.annotations, annotation]}
        )
        turn.messages = updated
        yield AnnotationEvent(message_id=message.id, annotation=annotation)

    def _finish(
        self,
        turn: Turn,
        state: TurnState,
        unresolved: tuple[PendingCall, ...],
        finish_reason: str,
    ) -> FinishEvent:
        turn.state = state
        turn.pending = [
            PendingToolAction(
                tool_call_id=call.tool_call_id,
                tool_name=call.tool_name,
                tool_description=self.registry.get(call.tool_name).description,
                args=call.args,
                action_summary=generate_action_summary(
                    self.registry.get(call.tool_name).description, call.args
                ),
            )
            for call in unresolved
        ]

        logger.info(
            f"Turn finished: conversation={turn.conversation_id}, state={state}, "
            f"steps={turn.steps_taken}, tool_calls={len(turn.tool_calls)}"
        )
        return FinishEvent(
            state=state,
            finish_reason=finish_reason,
            steps_taken=turn.steps_taken,
            pending=turn.pending,
        )

    def _flush_text(self, turn: Turn) -> None:
        """Turn buffered text deltas into a finalized text part."""
        if not turn.text_buffer or turn.assistant_index is None:
            return
        text = "".join(turn.text_buffer)
        turn.text_buffer.clear()

        message = self._assistant(turn)
        if message.parts and isinstance(message.parts[-1], TextPart):
            merged = TextPart(text=message.parts[-1].text + text)
            self._set_assistant(turn, message.replace_part(len(message.parts) - 1, merged))
        else:
            self._append_part(turn, TextPart(text=text))

    def _append_part(self, turn: Turn, part: TextPart | ToolInvocationPart) -> int:
        message = self._assistant(turn)
        self._set_assistant(turn, message.model_copy(update={"parts": [*message.parts, part]}))
        return len(message.parts)

    def _assistant(self, turn: Turn) -> Message:
        return turn.messages[self._require_assistant(turn)]

    def _set_assistant(self, turn: Turn, message: Message) -> None:
        updated = list(turn.messages)
        updated[self._require_assistant(turn)] = message
        turn.messages = updated

    @staticmethod
    def _require_assistant(turn: Turn) -> int:
        if turn.assistant_index is None:
            raise RuntimeError("Assistant message has not been started for this turn")
        return turn.assistant_index

    @staticmethod
    def _call_id_exists(turn: Turn, tool_call_id: str) -> bool:
        return any(
            part.tool_call_id == tool_call_id
            for message in turn.messages
            for part in message.tool_invocations()
        )
