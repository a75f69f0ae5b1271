"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.activities import SessionStatus


class PromptRequest(BaseModel):
    """A prompt run locally, outside of a Linear agent session."""

    prompt: str = Field(..., min_length=1, max_length=2000, description="The user's request")
    session_id: str | None = Field(
        None,
        min_length=1,
        max_length=100,
        description="Session identifier; a random one is generated when omitted",
    )


class PromptResponse(BaseModel):
    """How a local turn ended, with every activity it published."""

    session_id: str
    status: SessionStatus
    iterations: int = Field(..., description="Model cycles started during the turn")
    activities: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Published activity contents, in publish order",
    )


class WebhookAck(BaseModel):
    """Acknowledgement returned to Linear for every accepted delivery."""

    status: str = Field(..., description="'accepted' when a turn was started, otherwise 'ignored'")
    session_id: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "linear-weather-agent"
