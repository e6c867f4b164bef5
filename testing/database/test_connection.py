"""Tests for database connection helpers."""

import unittest

from src.database.connection import (
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from src.database.conversations import get_conversation, save_conversation_messages


class TestSessionScope(unittest.TestCase):
    """Tests for session_scope."""

    def setUp(self) -> None:
        """Create an in-memory database."""
        self.engine = create_db_engine("sqlite://")
        init_db(self.engine)
        self.factory = create_session_factory(self.engine)

    def tearDown(self) -> None:
        """Dispose of the engine."""
        self.engine.dispose()

    def test_commits_on_success(self) -> None:
        """Test that changes are committed when the block succeeds."""
        with session_scope(self.factory) as session:
            save_conversation_messages(session, "conv-1", [{"role": "user"}])

        with session_scope(self.factory) as session:
            record = get_conversation(session, "conv-1")
            self.assertIsNotNone(record)
            self.assertEqual(record.message_count, 1)

    def test_rolls_back_on_error(self) -> None:
        """Test that changes are discarded when the block raises."""
        with self.assertRaises(RuntimeError), session_scope(self.factory) as session:
            save_conversation_messages(session, "conv-1", [])
            raise RuntimeError("boom")

        with session_scope(self.factory) as session:
            self.assertIsNone(get_conversation(session, "conv-1"))


if __name__ == "__main__":
    unittest.main()
