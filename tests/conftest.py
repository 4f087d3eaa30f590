"""Shared fixtures: a temporary workspace and a scripted planner."""

from pathlib import Path
from typing import (
    Callable,
    List,
    Sequence,
)

import pytest

from codeloop.agent.planner_interface import BasePlanner
from codeloop.agent.tool_executor import ToolDispatcher
from codeloop.core.conversation import Conversation
from codeloop.core.schema import AssistantTurn
from codeloop.tools import ToolDescriptor
from codeloop.tools.sandbox import Workspace


class ScriptedPlanner(BasePlanner):
    """Returns pre-baked assistant turns and records what it was shown."""

    def __init__(self, turns: List[AssistantTurn], workdir: Path | None = None) -> None:
        super().__init__(workdir=workdir or Path("."))
        self._turns = turns  # shared, so tests can queue turns after construction
        self.seen_lengths: List[int] = []
        self.seen_tools: List[List[str]] = []

    def complete(
        self, conversation: Conversation, tools: Sequence[ToolDescriptor]
    ) -> AssistantTurn:
        self.seen_lengths.append(len(conversation))
        self.seen_tools.append([tool["name"] for tool in tools])
        if not self._turns:
            raise RuntimeError("model unavailable")
        return self._turns.pop(0)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """A workspace rooted at a fresh temporary directory."""
    return Workspace(root=tmp_path, command_timeout=10, max_output_chars=50_000)


@pytest.fixture
def dispatcher(workspace: Workspace) -> ToolDispatcher:
    traces: List[str] = []
    dispatcher = ToolDispatcher(workspace, trace=traces.append)
    dispatcher.traces = traces  # type: ignore[attr-defined]
    return dispatcher


@pytest.fixture
def scripted_planner() -> Callable[..., ScriptedPlanner]:
    """Factory for :class:`ScriptedPlanner` instances."""
    return ScriptedPlanner
