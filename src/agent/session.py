"""Conversation sessions.

An AgentSession owns one conversation: it loads history, appends the user
message, runs the StreamComposer and persists the result. Turns on the same
conversation are serialised by a per-session lock; different conversations
proceed independently.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from src.agent.bedrock_client import BedrockClient
from src.agent.composer import DEFAULT_SYSTEM_PROMPT, StreamComposer, Turn
from src.agent.enums import Decision
from src.agent.executor import ToolExecutor
from src.agent.models import Message, StreamEvent, TurnResult, create_user_message
from src.agent.provider import BedrockModelProvider, ModelProvider
from src.agent.store import InMemoryMessageStore, MessageStore, SQLMessageStore
from src.agent.utils.config import DEFAULT_AGENT_CONFIG, AgentConfig, AgentSettings
from src.agent.utils.tools.registry import ToolRegistry, create_default_registry
from src.database.connection import create_db_engine, init_db

logger = logging.getLogger(__name__)


class AgentSession:
    """A single conversation with its lock and collaborators."""

    def __init__(
        self,
        conversation_id: str,
        store: MessageStore,
        composer: StreamComposer,
    ) -> None:
        """Initialise the session.

        :param conversation_id: The conversation ID.
        :param store: Message store for this conversation.
        :param composer: Stream composer running the turns.
        """
        self.conversation_id = conversation_id
        self.store = store
        self.composer = composer
        self._lock = threading.Lock()

    def check(self) -> None:
        """Validate the stored history against the tool registry.

        Called before a turn starts so configuration problems surface before
        any output is produced.

        :raises ToolNotFoundError: If history references an unregistered tool.
        """
        self.composer.registry.validate_history(self.store.load(self.conversation_id))

    def stream(
        self,
        text: str,
        decisions: dict[str, Decision] | None = None,
    ) -> Iterator[StreamEvent]:
        """Start a turn and return its event stream.

        History is validated immediately; the turn itself runs as the
        returned iterator is consumed. Closing the iterator early cancels
        the turn and persists what was finalized so far.

        :param text: User message text. May be empty for a decision-only turn.
        :param decisions: Decisions for pending gated tool calls.
        :returns: Iterator of stream events.
        :raises ConfigurationError: If the stored history is inconsistent.
        """
        self.check()
        return self._stream(text, decisions or {})

    def run_turn(self, text: str, decisions: dict[str, Decision] | None = None) -> TurnResult:
        """Run a turn to completion and collect its result.

        :param text: User message text.
        :param decisions: Decisions for pending gated tool calls.
        :returns: Collected turn result.
        :raises ConfigurationError: If the stored history is inconsistent.
        """
        self.check()
        with self._lock:
            turn = self._open_turn(text, decisions or {})
            try:
                for _ in self.composer.run(turn):
                    pass
            finally:
                self._close_turn(turn)
        return _to_turn_result(turn)

    def messages(self) -> list[Message]:
        """Get the persisted history.

        :returns: Messages, oldest first.
        """
        return self.store.load(self.conversation_id)

    def clear(self) -> None:
        """Delete the conversation history, waiting for any running turn."""
        with self._lock:
            self.store.clear(self.conversation_id)
        logger.info(f"Cleared conversation: id={self.conversation_id}")

    def _stream(self, text: str, decisions: dict[str, Decision]) -> Iterator[StreamEvent]:
        with self._lock:
            turn = self._open_turn(text, decisions)
            try:
                yield from self.composer.run(turn)
            finally:
                self._close_turn(turn)

    def _open_turn(self, text: str, decisions: dict[str, Decision]) -> Turn:
        history = self.store.load(self.conversation_id)
        user_message = create_user_message(text, decisions)
        logger.info(
            f"Starting turn: conversation={self.conversation_id}, history={len(history)}, "
            f"decisions={len(decisions)}"
        )
        return Turn(
            conversation_id=self.conversation_id,
            messages=[*history, user_message],
            decisions=dict(decisions),
        )

    def _close_turn(self, turn: Turn) -> None:
        self.store.save(self.conversation_id, turn.finalized_messages())
        logger.debug(f"Persisted turn: conversation={self.conversation_id}, state={turn.state}")


def _to_turn_result(turn: Turn) -> TurnResult:
    message = turn.assistant_message
    return TurnResult(
        message_id=message.id if message is not None else None,
        response=message.text if message is not None else "",
        tool_calls=turn.tool_calls,
        steps_taken=turn.steps_taken,
        state=turn.state,
        error=turn.error,
        pending=turn.pending,
        sources=list(turn.sources.values()),
    )


class SessionManager:
    """Hands out one AgentSession per conversation ID."""

    def __init__(
        self,
        store: MessageStore,
        registry: ToolRegistry,
        provider: ModelProvider,
        executor: ToolExecutor | None = None,
        config: AgentConfig = DEFAULT_AGENT_CONFIG,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        """Initialise the manager.

        :param store: Message store shared by all sessions.
        :param registry: Tool registry.
        :param provider: Model provider.
        :param executor: Tool executor. Creates one if not provided.
        :param config: Agent configuration.
        :param system_prompt: System prompt for the agent.
        """
        self.store = store
        self.executor = executor or ToolExecutor(config)
        self.composer = StreamComposer(
            registry=registry,
            provider=provider,
            executor=self.executor,
            system_prompt=system_prompt,
            config=config,
        )
        self._sessions: dict[str, AgentSession] = {}
        self._lock = threading.Lock()

    def get(self, conversation_id: str) -> AgentSession:
        """Get or create the session for a conversation.

        :param conversation_id: The conversation ID.
        :returns: The session.
        """
        with self._lock:
            session = self._sessions.get(conversation_id)
            if session is None:
                session = AgentSession(conversation_id, self.store, self.composer)
                self._sessions[conversation_id] = session
            return session

    def shutdown(self) -> None:
        """Stop the tool worker pool."""
        self.executor.shutdown()


def create_session_manager(settings: AgentSettings) -> SessionManager:
    """Build a fully wired SessionManager from settings.

    Uses the SQL store when a database URL is configured, otherwise an
    in-memory store.

    :param settings: Agent settings.
    :returns: Configured SessionManager.
    :raises ConfigurationError: If the tool declarations are inconsistent.
    """
    config = settings.to_agent_config()

    store: MessageStore
    if settings.database_url:
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        store = SQLMessageStore(engine)
    else:
        logger.warning("AGENT_DATABASE_URL not set, conversations are kept in memory")
        store = InMemoryMessageStore()

    provider = BedrockModelProvider(BedrockClient(region_name=settings.aws_region), config=config)
    return SessionManager(
        store=store,
        registry=create_default_registry(),
        provider=provider,
        config=config,
    )
