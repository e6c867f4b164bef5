"""Pydantic models for health check endpoints."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Application version")
    chat_model: str = Field(..., description="Configured chat model alias")
    storage: Literal["sql", "memory"] = Field(..., description="Conversation storage backend")
