"""Tests for the append-only conversation and its tool-call pairing rule."""

import pytest

from codeloop.core.conversation import (
    Conversation,
    ConversationError,
)
from codeloop.core.schema import (
    AssistantTurn,
    ToolCall,
    ToolResultTurn,
    UserTurn,
)


def _calls(*ids: str) -> list[ToolCall]:
    return [ToolCall(id=i, name="bash", args={"command": "true"}) for i in ids]


def _result(call_id: str) -> ToolResultTurn:
    return ToolResultTurn(tool_call_id=call_id, name="bash", content="(no output)")


def test_append_and_iterate() -> None:
    conv = Conversation()
    conv.append(UserTurn(content="hi"))
    conv.append(AssistantTurn(content="hello"))

    assert len(conv) == 2
    assert [turn.role for turn in conv] == ["user", "assistant"]
    assert conv.last_assistant_turn().content == "hello"


def test_turns_is_a_snapshot() -> None:
    conv = Conversation([UserTurn(content="hi")])
    snapshot = conv.turns
    conv.append(AssistantTurn(content="hello"))

    assert len(snapshot) == 1
    assert isinstance(snapshot, tuple)


def test_results_must_follow_request_order() -> None:
    conv = Conversation([UserTurn(content="go"), AssistantTurn(tool_calls=_calls("a", "b"))])

    with pytest.raises(ConversationError, match="out of order"):
        conv.append(_result("b"))

    conv.append(_result("a"))
    conv.append(_result("b"))
    assert conv.pending_tool_calls() == []


def test_cannot_skip_pending_results() -> None:
    conv = Conversation([UserTurn(content="go"), AssistantTurn(tool_calls=_calls("a"))])

    with pytest.raises(ConversationError, match="unanswered"):
        conv.append(AssistantTurn(content="done"))
    with pytest.raises(ConversationError, match="unanswered"):
        conv.append(UserTurn(content="again"))

    assert len(conv) == 2


def test_stray_result_is_rejected() -> None:
    conv = Conversation([UserTurn(content="go")])

    with pytest.raises(ConversationError, match="does not answer"):
        conv.append(_result("zzz"))


def test_close_pending_adds_placeholders() -> None:
    conv = Conversation([UserTurn(content="go"), AssistantTurn(tool_calls=_calls("a", "b", "c"))])
    conv.append(_result("a"))

    placeholders = conv.close_pending("Error: cancelled")

    assert [p.tool_call_id for p in placeholders] == ["b", "c"]
    assert all(p.content == "Error: cancelled" for p in placeholders)
    assert conv.pending_tool_calls() == []
    conv.append(UserTurn(content="next question"))


def test_close_pending_without_pending_is_noop() -> None:
    conv = Conversation([UserTurn(content="go")])

    assert conv.close_pending("Error: cancelled") == []
    assert len(conv) == 1


def test_model_dump_is_json_ready() -> None:
    conv = Conversation(
        [UserTurn(content="go"), AssistantTurn(tool_calls=_calls("a")), _result("a")]
    )

    dumped = conv.model_dump()

    assert [d["role"] for d in dumped] == ["user", "assistant", "tool"]
    assert dumped[1]["tool_calls"][0]["id"] == "a"
    assert dumped[2]["tool_call_id"] == "a"
