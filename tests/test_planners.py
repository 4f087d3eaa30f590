"""Tests for the provider adapters, using fake SDK clients."""

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from codeloop.agent.planner_interface import (
    AnthropicPlanner,
    OpenAIPlanner,
    load_planner,
    to_anthropic_messages,
    to_openai_messages,
)
from codeloop.core.conversation import Conversation
from codeloop.core.schema import (
    AssistantTurn,
    ToolCall,
    ToolResultTurn,
    UserTurn,
)
from codeloop.tools import get_tool_descriptors


def _conversation() -> Conversation:
    return Conversation(
        [
            UserTurn(content="list files"),
            AssistantTurn(
                content="Looking.",
                tool_calls=[
                    ToolCall(id="c1", name="bash", args={"command": "ls"}),
                    ToolCall(id="c2", name="read_file", args='{"path": "a.txt"}'),
                ],
            ),
            ToolResultTurn(tool_call_id="c1", name="bash", content="a.txt"),
            ToolResultTurn(tool_call_id="c2", name="read_file", content="hello"),
        ]
    )


class _Recorder:
    """Captures create(**kwargs) calls and returns a canned response."""

    def __init__(self, response: Any) -> None:
        self.response = response
        self.requests: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.requests.append(kwargs)
        return self.response


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------
def test_to_openai_messages() -> None:
    messages = to_openai_messages(_conversation())

    assert messages[0] == {"role": "user", "content": "list files"}
    assert messages[1]["role"] == "assistant"
    assert messages[1]["tool_calls"][0]["function"] == {
        "name": "bash",
        "arguments": json.dumps({"command": "ls"}),
    }
    # Raw string arguments are passed through untouched
    assert messages[1]["tool_calls"][1]["function"]["arguments"] == '{"path": "a.txt"}'
    assert messages[2] == {"role": "tool", "tool_call_id": "c1", "content": "a.txt"}
    assert messages[3] == {"role": "tool", "tool_call_id": "c2", "content": "hello"}


def test_to_openai_messages_empty_assistant_turn_has_text_content() -> None:
    conversation = Conversation([UserTurn(content="hi"), AssistantTurn()])

    assert to_openai_messages(conversation)[1] == {"role": "assistant", "content": ""}


def test_openai_planner_parses_tool_calls(tmp_path) -> None:
    message = SimpleNamespace(
        content=None,
        tool_calls=[
            SimpleNamespace(
                id="call_1",
                function=SimpleNamespace(name="bash", arguments='{"command": "echo hi"}'),
            ),
            SimpleNamespace(
                id="call_2", function=SimpleNamespace(name="read_file", arguments="{broken")
            ),
        ],
    )
    completions = _Recorder(
        SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="tool_calls")])
    )
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    planner = OpenAIPlanner(workdir=tmp_path, client=client)

    turn = planner.complete(Conversation([UserTurn(content="hi")]), get_tool_descriptors())

    assert [call.id for call in turn.tool_calls] == ["call_1", "call_2"]
    assert turn.tool_calls[0].args == {"command": "echo hi"}
    assert turn.tool_calls[1].args == "{broken"
    assert turn.stop_reason == "tool_calls"

    request = completions.requests[0]
    assert request["messages"][0] == {
        "role": "system",
        "content": f"You are a coding agent at {tmp_path}. Use tools to solve tasks. "
        "Act, don't explain.",
    }
    assert [tool["function"]["name"] for tool in request["tools"]] == [
        "bash",
        "read_file",
        "write_file",
        "edit_file",
    ]
    assert request["tools"][0]["type"] == "function"


def test_openai_planner_final_answer(tmp_path) -> None:
    message = SimpleNamespace(content="Done.", tool_calls=None)
    completions = _Recorder(
        SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")])
    )
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

    turn = OpenAIPlanner(workdir=tmp_path, client=client).complete(Conversation(), [])

    assert turn.content == "Done."
    assert turn.tool_calls == []
    assert "tools" not in completions.requests[0]


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------
def test_to_anthropic_messages_groups_tool_results() -> None:
    conv = _conversation()
    conv.append(AssistantTurn(content="Found a.txt."))
    conv.append(UserTurn(content="thanks"))

    messages = to_anthropic_messages(conv)

    assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant", "user"]
    assert messages[1]["content"] == [
        {"type": "text", "text": "Looking."},
        {"type": "tool_use", "id": "c1", "name": "bash", "input": {"command": "ls"}},
        {"type": "tool_use", "id": "c2", "name": "read_file", "input": {"path": "a.txt"}},
    ]
    assert messages[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "c1", "content": "a.txt"},
        {"type": "tool_result", "tool_use_id": "c2", "content": "hello"},
    ]


def test_to_anthropic_messages_merges_consecutive_user_turns() -> None:
    """A failed query leaves a dangling user turn; the next one must merge with it."""

    conv = Conversation([UserTurn(content="first"), UserTurn(content="second")])

    messages = to_anthropic_messages(conv)

    assert len(messages) == 1
    assert [block["text"] for block in messages[0]["content"]] == ["first", "second"]


def test_anthropic_planner_parses_blocks(tmp_path) -> None:
    response = SimpleNamespace(
        stop_reason="tool_use",
        content=[
            SimpleNamespace(type="text", text="Checking."),
            SimpleNamespace(type="tool_use", id="tu_1", name="bash", input={"command": "ls"}),
        ],
    )
    messages = _Recorder(response)
    planner = AnthropicPlanner(workdir=tmp_path, client=SimpleNamespace(messages=messages))

    turn = planner.complete(Conversation([UserTurn(content="hi")]), get_tool_descriptors())

    assert turn.content == "Checking."
    assert turn.tool_calls == [ToolCall(id="tu_1", name="bash", args={"command": "ls"})]
    assert turn.stop_reason == "tool_use"
    request = messages.requests[0]
    assert request["system"].startswith(f"You are a coding agent at {tmp_path}.")
    assert request["tools"][0]["input_schema"]["required"] == ["command"]


def test_anthropic_planner_without_text(tmp_path) -> None:
    response = SimpleNamespace(
        stop_reason="tool_use",
        content=[SimpleNamespace(type="tool_use", id="tu_1", name="bash", input={})],
    )
    planner = AnthropicPlanner(
        workdir=tmp_path, client=SimpleNamespace(messages=_Recorder(response))
    )

    assert planner.complete(Conversation(), get_tool_descriptors()).content is None


def test_planner_errors_propagate(tmp_path) -> None:
    class _Failing:
        def create(self, **kwargs: Any) -> Any:
            raise ConnectionError("network down")

    planner = AnthropicPlanner(workdir=tmp_path, client=SimpleNamespace(messages=_Failing()))

    with pytest.raises(ConnectionError):
        planner.complete(Conversation([UserTurn(content="hi")]), [])


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
def test_load_planner(tmp_path) -> None:
    assert isinstance(load_planner("openai", workdir=tmp_path), OpenAIPlanner)
    assert isinstance(load_planner("Anthropic", workdir=tmp_path), AnthropicPlanner)


def test_load_planner_unknown() -> None:
    with pytest.raises(ValueError, match="not registered"):
        load_planner("nope")
