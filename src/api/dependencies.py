"""Shared dependencies for API endpoints."""

import logging
from functools import lru_cache

from fastapi import HTTPException, status
from pydantic import ValidationError

from src.agent.exceptions import ConfigurationError
from src.agent.session import SessionManager, create_session_manager
from src.agent.utils.config import get_agent_settings

logger = logging.getLogger(__name__)


@lru_cache
def _build_session_manager() -> SessionManager:
    return create_session_manager(get_agent_settings())


def get_session_manager() -> SessionManager:
    """Get the process-wide session manager.

    :returns: The configured SessionManager.
    :raises HTTPException: If the agent is misconfigured.
    """
    try:
        return _build_session_manager()
    except (ConfigurationError, ValidationError) as e:
        logger.error(f"Agent configuration error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Agent configuration error: {e}",
        ) from e
