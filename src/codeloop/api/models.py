"""
Pydantic models for codeloop API requests and responses.
This module defines the request and response schemas used by the codeloop API.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from codeloop.core.schema import LoopStatus


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., description="User message for the agent")
    session_id: Optional[str] = Field(None, description="Session ID for conversation context")


class ToolResultOut(BaseModel):
    """One tool result produced while answering a message."""

    name: str
    content: str


class MessageResponse(BaseModel):
    """API response returned to the caller."""

    reply: str
    status: LoopStatus
    session_id: str
    tool_results: List[ToolResultOut] = Field(default_factory=list)


class TranscriptResponse(BaseModel):
    """Full transcript of a session."""

    session_id: str
    turns: List[Dict[str, Any]]
