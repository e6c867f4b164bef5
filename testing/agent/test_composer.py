"""Tests for StreamComposer."""

import threading
import time
import unittest

from src.agent.composer import StreamComposer, Turn
from src.agent.enums import Decision, MessageRole, ToolInvocationState, TurnState
from src.agent.exceptions import BedrockClientError
from src.agent.executor import DENIED_RESULT, ToolExecutor
from src.agent.models import (
    ErrorEvent,
    FinishEvent,
    Message,
    SourceRecord,
    TextPart,
    ToolInvocationPart,
    create_user_message,
)
from src.agent.provider import StepFinish, TextDelta
from src.agent.utils.config import AgentConfig
from testing.agent.fakes import (
    AUTO_TOOL,
    FAILING_TOOL,
    GATED_TOOL,
    CountingHandler,
    LookupArgs,
    ScriptedProvider,
    make_registry,
    text_step,
    tool_step,
)


class ComposerTestCase(unittest.TestCase):
    """Shared fixtures for composer tests."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.auto = CountingHandler({"answer": 42})
        self.gated = CountingHandler({"sent": True})
        self.registry = make_registry(self.auto, self.gated)
        self.config = AgentConfig(max_steps=5, tool_timeout_seconds=5.0)
        self.executor = ToolExecutor(self.config)

    def tearDown(self) -> None:
        """Stop the tool worker pool."""
        self.executor.shutdown()

    def _run(
        self,
        provider: ScriptedProvider,
        messages: list[Message],
        decisions: dict[str, Decision] | None = None,
        config: AgentConfig | None = None,
    ) -> tuple[Turn, list]:
        composer = StreamComposer(
            self.registry, provider, self.executor, config=config or self.config
        )
        turn = Turn(conversation_id="conv-1", messages=messages, decisions=decisions or {})
        return turn, list(composer.run(turn))


class TestComposerGeneration(ComposerTestCase):
    """Tests for plain generation and auto-executing tools."""

    def test_text_only_turn(self) -> None:
        """Test a turn that only produces text."""
        provider = ScriptedProvider([text_step("Hello there")])

        turn, events = self._run(provider, [create_user_message("Hi")])

        self.assertEqual([e.type for e in events], ["start", "text", "finish"])
        self.assertEqual(turn.state, TurnState.DONE)
        self.assertEqual(turn.assistant_message.text, "Hello there")
        self.assertEqual(events[-1].finish_reason, "stop")
        self.assertEqual(len(turn.finalized_messages()), 2)

    def test_text_deltas_merge_into_one_part(self) -> None:
        """Test that consecutive deltas become a single text part."""
        provider = ScriptedProvider(
            [[TextDelta(text="Hel"), TextDelta(text="lo"), StepFinish(finish_reason="end_turn")]]
        )

        turn, events = self._run(provider, [create_user_message("Hi")])

        self.assertEqual(turn.assistant_message.parts, [TextPart(text="Hello")])
        self.assertEqual([e.text for e in events if e.type == "text"], ["Hel", "lo"])

    def test_token_limit_reports_length(self) -> None:
        """Test that a max_tokens stop is reported as a length finish."""
        provider = ScriptedProvider(
            [[TextDelta(text="Cut"), StepFinish(finish_reason="max_tokens")]]
        )

        turn, events = self._run(provider, [create_user_message("Hi")])

        self.assertEqual(turn.state, TurnState.DONE)
        self.assertEqual(events[-1].finish_reason, "length")

    def test_guardrail_stop_reports_content_filter(self) -> None:
        """Test that a guardrail stop is reported as a content-filter finish."""
        provider = ScriptedProvider([[StepFinish(finish_reason="guardrail_intervened")]])

        turn, events = self._run(provider, [create_user_message("Hi")])

        self.assertEqual(turn.state, TurnState.DONE)
        self.assertEqual(events[-1].finish_reason, "content-filter")

    def test_auto_tool_runs_and_generation_continues(self) -> None:
        """Test that an auto tool is executed and its result fed back to the model."""
        provider = ScriptedProvider(
            [tool_step(("c1", AUTO_TOOL, {"query": "meaning"})), text_step("It is 42")]
        )

        turn, events = self._run(provider, [create_user_message("What is it?")])

        self.assertEqual(
            [e.type for e in events],
            ["start", "tool-call", "tool-result", "text", "finish"],
        )
        self.assertEqual(len(self.auto.calls), 1)
        self.assertEqual(self.auto.calls[0].query, "meaning")
        self.assertEqual(turn.steps_taken, 2)

        invocation, text = turn.assistant_message.parts
        self.assertIsInstance(invocation, ToolInvocationPart)
        self.assertEqual(invocation.state, ToolInvocationState.RESULT)
        self.assertEqual(invocation.result, {"answer": 42})
        self.assertEqual(text, TextPart(text="It is 42"))

        # The second step sees the resolved invocation
        second_call_history = provider.calls[1]
        self.assertTrue(second_call_history[-1].tool_invocations()[0].is_resolved)

    def test_invalid_auto_tool_args_recorded_as_error(self) -> None:
        """Test that argument validation failures become error results."""
        provider = ScriptedProvider([tool_step(("c1", AUTO_TOOL, {})), text_step("Sorry")])

        turn, events = self._run(provider, [create_user_message("Look up")])

        result_event = next(e for e in events if e.type == "tool-result")
        self.assertTrue(result_event.is_error)
        self.assertEqual(result_event.result["error_type"], "validation")
        self.assertEqual(self.auto.calls, [])
        self.assertEqual(turn.state, TurnState.DONE)

    def test_unknown_tool_recorded_as_error(self) -> None:
        """Test that a hallucinated tool gets an error result and history stays valid."""
        provider = ScriptedProvider([tool_step(("u1", "nonexistent", {})), text_step("Oops")])

        turn, events = self._run(provider, [create_user_message("Do it")])

        invocation = turn.assistant_message.tool_invocations()[0]
        self.assertEqual(invocation.result["error_type"], "unknown_tool")
        self.assertEqual(turn.state, TurnState.DONE)
        self.registry.validate_history(turn.finalized_messages())

    def test_duplicate_tool_call_id_is_replaced(self) -> None:
        """Test that a reused tool call ID gets a fresh identifier."""
        provider = ScriptedProvider(
            [
                tool_step(("dup", AUTO_TOOL, {"query": "a"}), ("dup", AUTO_TOOL, {"query": "b"})),
                text_step("Done"),
            ]
        )

        turn, _ = self._run(provider, [create_user_message("Twice")])

        ids = [part.tool_call_id for part in turn.assistant_message.tool_invocations()]
        self.assertEqual(len(set(ids)), 2)
        self.assertEqual(ids[0], "dup")

    def test_step_budget_forces_done(self) -> None:
        """Test that a model that always calls a tool stops at max_steps."""
        provider = ScriptedProvider(
            step_factory=lambda n: tool_step((f"c{n}", AUTO_TOOL, {"query": "again"}))
        )

        turn, events = self._run(
            provider,
            [create_user_message("Loop")],
            config=AgentConfig(max_steps=3, tool_timeout_seconds=5.0),
        )

        self.assertEqual(len(provider.calls), 3)
        self.assertEqual(len(self.auto.calls), 3)
        self.assertEqual(turn.state, TurnState.DONE)
        self.assertIsInstance(events[-1], FinishEvent)
        self.assertEqual(events[-1].finish_reason, "max-steps")
        self.assertEqual(events[-1].steps_taken, 3)

    def test_provider_error_fails_turn(self) -> None:
        """Test that a provider failure ends the turn with an error event."""
        provider = ScriptedProvider(
            [text_step("partial")], fail_with=BedrockClientError("throttled")
        )

        turn, events = self._run(provider, [create_user_message("Hi")])

        self.assertEqual([e.type for e in events], ["start", "text", "error"])
        self.assertIsInstance(events[-1], ErrorEvent)
        self.assertEqual(events[-1].message, "throttled")
        self.assertEqual(turn.state, TurnState.FAILED)
        self.assertEqual(turn.error, "throttled")
        # Text emitted before the failure is kept
        self.assertEqual(turn.assistant_message.text, "partial")

    def test_unexpected_provider_exception_fails_turn(self) -> None:
        """Test that any provider exception ends the stream with an error event."""
        provider = ScriptedProvider(
            [text_step("partial")], fail_with=ConnectionResetError("connection reset")
        )

        turn, events = self._run(provider, [create_user_message("Hi")])

        self.assertEqual([e.type for e in events], ["start", "text", "error"])
        self.assertIn("ConnectionResetError", events[-1].message)
        self.assertEqual(turn.state, TurnState.FAILED)
        self.assertEqual(turn.assistant_message.text, "partial")

    def test_sources_annotation_emitted_after_content(self) -> None:
        """Test that sources are attached once, after the content and before finish."""
        source = SourceRecord(id="s1", url="https://example.com/a", title="Example")
        provider = ScriptedProvider(
            [[TextDelta(text="Answer"), StepFinish(finish_reason="end_turn", sources=(source,))]]
        )

        turn, events = self._run(provider, [create_user_message("Search")])

        self.assertEqual([e.type for e in events], ["start", "text", "annotation", "finish"])
        annotation = events[2].annotation
        self.assertEqual(
            annotation,
            {"sources": [{"id": "s1", "url": "https://example.com/a", "title": "Example"}]},
        )
        self.assertEqual(events[2].message_id, turn.assistant_message.id)
        self.assertEqual(turn.assistant_message.annotations, [annotation])

    def test_cancellation_drops_unflushed_text(self) -> None:
        """Test that closing the stream early persists only finalized parts."""
        provider = ScriptedProvider([text_step("partial answer")])
        composer = StreamComposer(self.registry, provider, self.executor, config=self.config)
        turn = Turn(conversation_id="conv-1", messages=[create_user_message("Hi")])

        stream = composer.run(turn)
        self.assertEqual(next(stream).type, "start")
        self.assertEqual(next(stream).type, "text")
        stream.close()

        finalized = turn.finalized_messages()
        self.assertEqual(len(finalized), 1)
        self.assertEqual(finalized[0].role, MessageRole.USER)

    def test_cancellation_lets_running_auto_tool_finish(self) -> None:
        """Test that a running auto tool completes and is recorded after the stream closes."""
        started = threading.Event()

        def slow_lookup(args: LookupArgs) -> dict[str, int]:
            started.set()
            time.sleep(0.2)
            return {"ok": 1}

        registry = make_registry(auto_handler=slow_lookup)
        provider = ScriptedProvider(
            [tool_step(("a1", AUTO_TOOL, {"query": "x"})), text_step("never sent")]
        )
        composer = StreamComposer(registry, provider, self.executor, config=self.config)
        turn = Turn(conversation_id="conv-1", messages=[create_user_message("Hi")])

        stream = composer.run(turn)
        self.assertEqual(next(stream).type, "start")
        self.assertEqual(next(stream).type, "tool-call")
        self.assertTrue(started.wait(timeout=5))
        stream.close()

        part = turn.assistant_message.parts[0]
        self.assertEqual(part.state, ToolInvocationState.RESULT)
        self.assertEqual(part.result, {"ok": 1})
        self.assertEqual(len(provider.calls), 1)
        self.assertEqual(turn.outstanding, [])


class TestComposerConfirmation(ComposerTestCase):
    """Tests for confirmation-gated tools."""

    def test_gated_call_without_decision_awaits_confirmation(self) -> None:
        """Test that an undecided gated call pauses the turn."""
        provider = ScriptedProvider([tool_step(("g1", GATED_TOOL, {"to": "a@example.com"}))])

        turn, events = self._run(provider, [create_user_message("Email Alice")])

        self.assertEqual([e.type for e in events], ["start", "tool-call", "finish"])
        self.assertEqual(turn.state, TurnState.AWAITING_CONFIRMATION)
        self.assertEqual(events[-1].finish_reason, "awaiting-confirmation")
        self.assertEqual(events[-1].pending[0].tool_call_id, "g1")
        self.assertIn("a@example.com", events[-1].pending[0].action_summary)
        self.assertEqual(self.gated.calls, [])
        self.assertEqual(len(provider.calls), 1)

        invocation = turn.assistant_message.tool_invocations()[0]
        self.assertEqual(invocation.state, ToolInvocationState.CALL)

    def test_mixed_auto_and_gated_calls_in_one_step(self) -> None:
        """Test auto, undecided gated and approved gated calls in the same step."""
        provider = ScriptedProvider(
            [
                tool_step(
                    ("a", AUTO_TOOL, {"query": "x"}),
                    ("b", GATED_TOOL, {"to": "b@example.com"}),
                    ("c", GATED_TOOL, {"to": "c@example.com"}),
                )
            ]
        )

        turn, events = self._run(
            provider, [create_user_message("Do all three")], decisions={"c": Decision.APPROVE}
        )

        self.assertEqual(turn.state, TurnState.AWAITING_CONFIRMATION)
        self.assertEqual(len(provider.calls), 1)
        self.assertEqual(
            [e.tool_call_id for e in events if e.type == "tool-result"], ["a", "c"]
        )

        parts = {p.tool_call_id: p for p in turn.assistant_message.tool_invocations()}
        self.assertEqual(parts["a"].result, {"answer": 42})
        self.assertEqual(parts["b"].state, ToolInvocationState.CALL)
        self.assertEqual(parts["c"].result, {"sent": True})
        self.assertEqual(len(self.gated.calls), 1)
        self.assertEqual(self.gated.calls[0].to, "c@example.com")
        self.assertEqual([p.tool_call_id for p in events[-1].pending], ["b"])

    def test_approval_on_next_turn_executes_and_continues(self) -> None:
        """Test the full pause and approve cycle across two turns."""
        first = ScriptedProvider([tool_step(("g1", GATED_TOOL, {"to": "a@example.com"}))])
        turn1, events1 = self._run(first, [create_user_message("Email Alice")])

        self.assertEqual(turn1.state, TurnState.AWAITING_CONFIRMATION)
        self.assertFalse(any(e.type == "tool-result" for e in events1))

        decisions = {"g1": Decision.APPROVE}
        history = [*turn1.finalized_messages(), create_user_message("", decisions)]
        second = ScriptedProvider([text_step("Email sent")])
        turn2, events2 = self._run(second, history, decisions=decisions)

        self.assertEqual(events2[0].type, "tool-result")
        self.assertEqual(events2[0].result, {"sent": True})
        self.assertEqual(turn2.state, TurnState.DONE)
        self.assertEqual(turn2.assistant_message.text, "Email sent")
        self.assertEqual(len(self.gated.calls), 1)

        earlier = turn2.messages[1].tool_invocations()[0]
        self.assertEqual(earlier.state, ToolInvocationState.RESULT)
        self.assertEqual(earlier.result, {"sent": True})
        # The model sees the resolved call
        self.assertTrue(second.calls[0][1].tool_invocations()[0].is_resolved)

    def test_rejection_records_denial_without_running_tool(self) -> None:
        """Test that a rejected call gets the denial sentinel."""
        history = [
            create_user_message("Email Alice"),
            Message(
                role=MessageRole.ASSISTANT,
                parts=[
                    ToolInvocationPart(
                        tool_call_id="g1", tool_name=GATED_TOOL, args={"to": "a@example.com"}
                    )
                ],
            ),
        ]
        decisions = {"g1": Decision.REJECT}
        provider = ScriptedProvider([text_step("Okay, I won't send it")])

        turn, events = self._run(
            provider, [*history, create_user_message("", decisions)], decisions=decisions
        )

        self.assertEqual(events[0].result, DENIED_RESULT)
        self.assertTrue(events[0].is_error)
        self.assertEqual(self.gated.calls, [])
        self.assertEqual(turn.messages[1].tool_invocations()[0].result, DENIED_RESULT)
        self.assertEqual(turn.state, TurnState.DONE)

    def test_approved_tool_that_raises_still_completes(self) -> None:
        """Test that an approved tool failure becomes data and the turn finishes."""
        history = [
            create_user_message("Explode"),
            Message(
                role=MessageRole.ASSISTANT,
                parts=[
                    ToolInvocationPart(
                        tool_call_id="f1", tool_name=FAILING_TOOL, args={"query": "x"}
                    )
                ],
            ),
        ]
        decisions = {"f1": Decision.APPROVE}
        provider = ScriptedProvider([text_step("That failed")])

        turn, events = self._run(
            provider, [*history, create_user_message("", decisions)], decisions=decisions
        )

        result = turn.messages[1].tool_invocations()[0].result
        self.assertEqual(result["error_type"], "execution")
        self.assertIn("boom", result["error"])
        self.assertTrue(events[0].is_error)
        self.assertEqual(turn.state, TurnState.DONE)

    def test_pending_call_blocks_generation_without_decision(self) -> None:
        """Test that a new turn with the call still undecided does not prompt the model."""
        history = [
            create_user_message("Email Alice"),
            Message(
                role=MessageRole.ASSISTANT,
                parts=[
                    ToolInvocationPart(
                        tool_call_id="g1", tool_name=GATED_TOOL, args={"to": "a@example.com"}
                    )
                ],
            ),
            create_user_message("Hello?"),
        ]
        provider = ScriptedProvider([])

        turn, events = self._run(provider, history)

        self.assertEqual([e.type for e in events], ["finish"])
        self.assertEqual(turn.state, TurnState.AWAITING_CONFIRMATION)
        self.assertEqual(provider.calls, [])
        self.assertIsNone(turn.assistant_message)

    def test_older_pending_calls_are_ignored(self) -> None:
        """Test that calls outside the latest assistant message are never resolved."""
        history = [
            create_user_message("Email Alice"),
            Message(
                role=MessageRole.ASSISTANT,
                parts=[
                    ToolInvocationPart(
                        tool_call_id="old", tool_name=GATED_TOOL, args={"to": "a@example.com"}
                    )
                ],
            ),
            create_user_message("Never mind"),
            Message(role=MessageRole.ASSISTANT, parts=[TextPart(text="Okay")]),
        ]
        decisions = {"old": Decision.APPROVE}
        provider = ScriptedProvider([text_step("Anything else?")])

        turn, _ = self._run(
            provider, [*history, create_user_message("Thanks", decisions)], decisions=decisions
        )

        self.assertEqual(turn.state, TurnState.DONE)
        self.assertEqual(self.gated.calls, [])
        self.assertEqual(turn.messages[1].tool_invocations()[0].state, ToolInvocationState.CALL)


if __name__ == "__main__":
    unittest.main()
