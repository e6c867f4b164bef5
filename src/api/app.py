"""FastAPI application configuration."""

import logging

from fastapi import FastAPI

from src.api.chat import router as chat_router
from src.api.health import router as health_router
from src.api.models import API_VERSION, ErrorResponse
from src.observability.sentry import init_sentry
from src.utils.logging import configure_logging

configure_logging()
init_sentry()

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    :returns: Configured FastAPI application instance.
    """
    application = FastAPI(
        title="Chat Agent API",
        version=API_VERSION,
        responses={
            500: {"model": ErrorResponse, "description": "Internal server error"},
        },
    )

    # Register routers
    application.include_router(health_router)
    application.include_router(chat_router)

    logger.info("FastAPI application created")

    return application


# Application instance for uvicorn
app = create_app()
