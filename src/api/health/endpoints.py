"""Health check endpoints."""

import logging

from fastapi import APIRouter

from src.agent.utils.config import get_agent_settings
from src.api.health.models import HealthResponse
from src.api.models import API_VERSION

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "",
    response_model=HealthResponse,
    summary="Check service health",
    description="Returns the health status and configured backends of the chat service.",
)
def health_check() -> HealthResponse:
    """Check if the API service is healthy.

    :returns: Health status response.
    """
    settings = get_agent_settings()
    logger.debug("Health check requested")
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        chat_model=settings.chat_model,
        storage="sql" if settings.database_url else "memory",
    )
