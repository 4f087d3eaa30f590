"""
Append-only conversation transcript.

A :class:`Conversation` holds the ordered turns exchanged with the planner.  It is never rewritten
or truncated; the only mutation is :meth:`Conversation.append`.  Appending also enforces the
pairing rule providers rely on: every tool call of an assistant turn is answered by exactly one
tool result, in order, before anything else is appended.
"""

import logging
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
)

from codeloop.core.schema import (
    AssistantTurn,
    ToolCall,
    ToolResultTurn,
    Turn,
)

logger = logging.getLogger(__name__)


class ConversationError(RuntimeError):
    """Raised when an append would break the tool call / tool result pairing."""


class Conversation:
    """Ordered transcript of user, assistant and tool-result turns."""

    def __init__(self, turns: Optional[Iterable[Turn]] = None) -> None:
        self._turns: List[Turn] = []
        self._pending: List[ToolCall] = []
        for turn in turns or ():
            self.append(turn)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    @property
    def turns(self) -> Tuple[Turn, ...]:
        """Read-only snapshot of the transcript."""
        return tuple(self._turns)

    def append(self, turn: Turn) -> None:
        """
        Append *turn* to the transcript.

        Raises
        ------
        ConversationError
            If *turn* is a tool result that does not answer the next pending tool call, or if it
            is any other turn while tool calls are still unanswered.
        """
        if isinstance(turn, ToolResultTurn):
            if not self._pending:
                raise ConversationError(
                    f"Tool result '{turn.tool_call_id}' does not answer any pending tool call."
                )
            expected = self._pending[0]
            if turn.tool_call_id != expected.id:
                raise ConversationError(
                    f"Tool result '{turn.tool_call_id}' out of order; expected '{expected.id}'."
                )
            self._pending.pop(0)
        else:
            if self._pending:
                raise ConversationError(
                    f"{len(self._pending)} tool call(s) still unanswered; "
                    f"cannot append a {turn.role} turn."
                )
            if isinstance(turn, AssistantTurn):
                self._pending = list(turn.tool_calls)

        self._turns.append(turn)

    def pending_tool_calls(self) -> List[ToolCall]:
        """Tool calls of the last assistant turn that have no result yet."""
        return list(self._pending)

    def last_assistant_turn(self) -> Optional[AssistantTurn]:
        for turn in reversed(self._turns):
            if isinstance(turn, AssistantTurn):
                return turn
        return None

    def close_pending(self, reason: str) -> List[ToolResultTurn]:
        """Answer every unanswered tool call with *reason* so the pairing holds again."""
        placeholders = [
            ToolResultTurn(tool_call_id=call.id, name=call.name, content=reason)
            for call in self._pending
        ]
        if placeholders:
            logger.warning("Closing %d unanswered tool call(s): %s", len(placeholders), reason)
        for result in placeholders:
            self.append(result)
        return placeholders

    def model_dump(self) -> List[Dict[str, Any]]:
        """JSON-ready list of turns."""
        return [turn.model_dump() for turn in self._turns]
