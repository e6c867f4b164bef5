"""Tests for BedrockModelProvider."""

import unittest
from unittest.mock import MagicMock

from src.agent.models import create_user_message
from src.agent.provider import BedrockModelProvider, StepFinish, TextDelta, ToolCallRequest
from src.agent.utils.config import AgentConfig


def _tool_use_events(index: int, tool_id: str, name: str, chunks: list[str]) -> list[dict]:
    events: list[dict] = [
        {
            "contentBlockStart": {
                "contentBlockIndex": index,
                "start": {"toolUse": {"toolUseId": tool_id, "name": name}},
            }
        }
    ]
    events.extend(
        {"contentBlockDelta": {"contentBlockIndex": index, "delta": {"toolUse": {"input": chunk}}}}
        for chunk in chunks
    )
    events.append({"contentBlockStop": {"contentBlockIndex": index}})
    return events


class TestBedrockModelProvider(unittest.TestCase):
    """Tests for BedrockModelProvider."""

    def setUp(self) -> None:
        """Set up a provider with a mocked client."""
        self.mock_client = MagicMock()
        self.config = AgentConfig(chat_model="haiku", max_tokens=512, temperature=0.2, top_p=0.8)
        self.provider = BedrockModelProvider(client=self.mock_client, config=self.config)

    def _run(self, events: list[dict]) -> list:
        self.mock_client.converse_stream.return_value = iter(events)
        return list(self.provider.stream_step("System", [create_user_message("Hi")], None))

    def test_text_deltas(self) -> None:
        """Test that text deltas are streamed as they arrive."""
        result = self._run(
            [
                {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"text": "Hel"}}},
                {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"text": "lo"}}},
                {"contentBlockStop": {"contentBlockIndex": 0}},
                {"messageStop": {"stopReason": "end_turn"}},
                {"metadata": {"usage": {"inputTokens": 10, "outputTokens": 2}}},
            ]
        )

        self.assertEqual(result[:2], [TextDelta(text="Hel"), TextDelta(text="lo")])
        finish = result[-1]
        self.assertIsInstance(finish, StepFinish)
        self.assertEqual(finish.finish_reason, "end_turn")
        self.assertEqual(finish.usage["outputTokens"], 2)

    def test_tool_use_input_is_accumulated(self) -> None:
        """Test that chunked tool input JSON is joined and parsed."""
        result = self._run(
            [
                *_tool_use_events(0, "t1", "lookup", ['{"que', 'ry": "x"}']),
                {"messageStop": {"stopReason": "tool_use"}},
            ]
        )

        self.assertEqual(
            result[0], ToolCallRequest(tool_call_id="t1", tool_name="lookup", args={"query": "x"})
        )
        self.assertEqual(result[-1].finish_reason, "tool_use")

    def test_invalid_tool_input_becomes_empty_args(self) -> None:
        """Test that malformed tool input does not break the stream."""
        result = self._run(_tool_use_events(0, "t1", "lookup", ["{not json"]))

        self.assertEqual(result[0].args, {})

    def test_citations_become_sources(self) -> None:
        """Test that web citations are collected as deduplicated sources."""
        citation = {
            "title": "Example",
            "location": {"web": {"url": "https://example.com", "domain": "example.com"}},
        }
        result = self._run(
            [
                {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"citation": citation}}},
                {"contentBlockDelta": {"contentBlockIndex": 0, "delta": {"citation": citation}}},
                {"messageStop": {"stopReason": "end_turn"}},
            ]
        )

        sources = result[-1].sources
        self.assertEqual(len(sources), 1)
        self.assertEqual(sources[0].url, "https://example.com")
        self.assertEqual(sources[0].title, "Example")

    def test_request_uses_config_and_converted_messages(self) -> None:
        """Test the arguments passed to the Bedrock client."""
        self._run([])

        kwargs = self.mock_client.converse_stream.call_args.kwargs
        self.assertEqual(kwargs["model_id"], "haiku")
        self.assertEqual(kwargs["max_tokens"], 512)
        self.assertEqual(kwargs["temperature"], 0.2)
        self.assertEqual(kwargs["top_p"], 0.8)
        self.assertEqual(kwargs["system_prompt"], "System")
        self.assertEqual(kwargs["messages"], [{"role": "user", "content": [{"text": "Hi"}]}])


if __name__ == "__main__":
    unittest.main()
