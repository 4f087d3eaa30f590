"""
Schema definitions for planner <-> agent <-> tool messages.

These data models serve as the contract between the planner LLM, the orchestration loop, and
individual tools.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

from enum import Enum
from typing import (
    Annotated,
    Any,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
)


class ToolCall(BaseModel):
    """A call that the planner wants the agent to execute."""

    id: str = Field(..., description="Opaque identifier issued by the model")
    name: str = Field(..., description="Registered tool name")
    args: Any = Field(
        default_factory=dict,
        description="Arguments as produced by the model; not guaranteed to be well-typed",
    )


class UserTurn(BaseModel):
    """Free-form text from the operator."""

    role: Literal["user"] = "user"
    content: str


class AssistantTurn(BaseModel):
    """A model response: optional text plus zero or more tool calls."""

    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    stop_reason: Optional[str] = None  # Provider's raw stop signal, for diagnostics


class ToolResultTurn(BaseModel):
    """The outcome of one tool call, correlated by *tool_call_id*."""

    role: Literal["tool"] = "tool"
    tool_call_id: str
    name: str
    content: str


Turn = Annotated[Union[UserTurn, AssistantTurn, ToolResultTurn], Field(discriminator="role")]


class LoopStatus(str, Enum):
    """How an agent loop run ended."""

    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"


class LoopResult(BaseModel):
    """Summary of one agent loop run."""

    status: LoopStatus
    reply: Optional[str] = None  # Text of the last assistant turn
    iterations: int = 0  # Number of model calls made
