"""Pydantic models shared by API endpoints."""

from pydantic import BaseModel, Field

API_VERSION = "0.1.0"


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str = Field(..., description="Error description")
