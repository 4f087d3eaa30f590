"""
Planner interface for codeloop.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
conversation) stays model-agnostic.

We support two back-ends out of the box, both using native tool calling:

1. **OpenAI** chat completions (or any server speaking that API, via ``OPENAI_BASE_URL``).
2. **Anthropic** messages (optionally through ``ANTHROPIC_BASE_URL``).

Additional providers can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.

Planners do not retry and do not swallow errors: a failed model call propagates to whoever drives
the agent loop.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from pathlib import Path
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Sequence,
    Type,
)

import httpx

from codeloop.config import settings
from codeloop.core.conversation import Conversation
from codeloop.core.schema import (
    AssistantTurn,
    ToolCall,
    ToolResultTurn,
    UserTurn,
)
from codeloop.tools import ToolDescriptor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_planner(name: str | None = None, workdir: str | Path | None = None) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    3. default: ``"openai"``
    """

    target = name or getattr(settings, "PLANNER", "openai")
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls(workdir=workdir)


def _http_client() -> httpx.Client:
    return httpx.Client(timeout=settings.MODEL_TIMEOUT)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner that turns a conversation into the next assistant turn."""

    # Common system prompt for all planners
    SYSTEM_PROMPT: ClassVar[str] = (
        "You are a coding agent at {workdir}. Use tools to solve tasks. Act, don't explain."
    )
    DEFAULT_MODEL: ClassVar[str] = ""

    def __init__(self, workdir: str | Path | None = None) -> None:
        self.workdir = Path(workdir or settings.WORKDIR or Path.cwd())
        self.model = settings.MODEL_ID or self.DEFAULT_MODEL

    @property
    def system_prompt(self) -> str:
        return self.SYSTEM_PROMPT.format(workdir=self.workdir)

    @abstractmethod
    def complete(
        self, conversation: Conversation, tools: Sequence[ToolDescriptor]
    ) -> AssistantTurn:
        """Send *conversation* and the tool catalog to the model; return its turn."""


def _encode_args(args: Any) -> str:
    return args if isinstance(args, str) else json.dumps(args)


def _decode_args(raw: str | None) -> Any:
    """Decode tool-call arguments, keeping the raw string when it is not valid JSON."""
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Model issued non-JSON tool arguments: %s", raw[:200])
        return raw


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
def to_openai_messages(conversation: Conversation) -> List[Dict[str, Any]]:
    """Map the transcript onto chat-completions messages (without the system message)."""
    messages: List[Dict[str, Any]] = []
    for turn in conversation:
        if isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.content})
        elif isinstance(turn, AssistantTurn):
            message: Dict[str, Any] = {"role": "assistant", "content": turn.content}
            if not turn.tool_calls:
                # null content is only accepted alongside tool_calls
                message["content"] = turn.content or ""
            else:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": _encode_args(call.args)},
                    }
                    for call in turn.tool_calls
                ]
            messages.append(message)
        elif isinstance(turn, ToolResultTurn):
            messages.append(
                {"role": "tool", "tool_call_id": turn.tool_call_id, "content": turn.content}
            )
    return messages


def to_openai_tools(tools: Sequence[ToolDescriptor]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["parameters"],
            },
        }
        for tool in tools
    ]


@register_planner("openai")
class OpenAIPlanner(BasePlanner):
    """OpenAI chat-completions planner with function calling."""

    DEFAULT_MODEL = "gpt-4o"

    def __init__(self, workdir: str | Path | None = None, client: Any = None) -> None:
        super().__init__(workdir)
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.OpenAI(
                # Local OpenAI-compatible servers usually accept any key.
                api_key=settings.OPENAI_API_KEY or "dummy-key",
                base_url=settings.OPENAI_BASE_URL,
                timeout=settings.MODEL_TIMEOUT,
                max_retries=0,
                http_client=_http_client(),
            )
        return self._client

    def complete(
        self, conversation: Conversation, tools: Sequence[ToolDescriptor]
    ) -> AssistantTurn:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                *to_openai_messages(conversation),
            ],
        }
        if tools:
            request["tools"] = to_openai_tools(tools)

        resp = self.client.chat.completions.create(**request)
        choice = resp.choices[0]
        message = choice.message
        calls = [
            ToolCall(
                id=call.id, name=call.function.name, args=_decode_args(call.function.arguments)
            )
            for call in message.tool_calls or []
        ]
        logger.debug(
            "OpenAI planner finish_reason=%s tool_calls=%s",
            choice.finish_reason,
            [call.name for call in calls],
        )
        return AssistantTurn(
            content=message.content, tool_calls=calls, stop_reason=choice.finish_reason
        )


def to_anthropic_messages(conversation: Conversation) -> List[Dict[str, Any]]:
    """
    Map the transcript onto Anthropic messages.

    Tool results travel as ``tool_result`` blocks inside user messages, and the API wants roles to
    alternate, so consecutive messages with the same role are merged.
    """
    messages: List[Dict[str, Any]] = []

    def add(role: str, blocks: List[Dict[str, Any]]) -> None:
        if not blocks:
            return
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": role, "content": blocks})

    for turn in conversation:
        if isinstance(turn, UserTurn):
            add("user", [{"type": "text", "text": turn.content}])
        elif isinstance(turn, AssistantTurn):
            blocks: List[Dict[str, Any]] = []
            if turn.content:
                blocks.append({"type": "text", "text": turn.content})
            for call in turn.tool_calls:
                tool_input = _decode_args(call.args) if isinstance(call.args, str) else call.args
                if not isinstance(tool_input, dict):
                    tool_input = {}
                blocks.append(
                    {"type": "tool_use", "id": call.id, "name": call.name, "input": tool_input}
                )
            add("assistant", blocks)
        elif isinstance(turn, ToolResultTurn):
            result = {
                "type": "tool_result",
                "tool_use_id": turn.tool_call_id,
                "content": turn.content,
            }
            add("user", [result])
    return messages


def to_anthropic_tools(tools: Sequence[ToolDescriptor]) -> List[Dict[str, Any]]:
    return [
        {
            "name": tool["name"],
            "description": tool["description"],
            "input_schema": tool["parameters"],
        }
        for tool in tools
    ]


@register_planner("anthropic")
class AnthropicPlanner(BasePlanner):
    """Anthropic Claude-based planner with tool use."""

    DEFAULT_MODEL = "claude-3-5-haiku-latest"

    def __init__(self, workdir: str | Path | None = None, client: Any = None) -> None:
        super().__init__(workdir)
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.Anthropic(
                api_key=settings.ANTHROPIC_API_KEY or "dummy-key",
                base_url=settings.ANTHROPIC_BASE_URL,
                timeout=settings.MODEL_TIMEOUT,
                max_retries=0,
                http_client=_http_client(),
            )
        return self._client

    def complete(
        self, conversation: Conversation, tools: Sequence[ToolDescriptor]
    ) -> AssistantTurn:
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": settings.MAX_TOKENS,
            "system": self.system_prompt,
            "messages": to_anthropic_messages(conversation),
        }
        if tools:
            request["tools"] = to_anthropic_tools(tools)

        response = self.client.messages.create(**request)

        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, args=block.input))

        logger.debug(
            "Anthropic planner stop_reason=%s tool_calls=%s",
            response.stop_reason,
            [call.name for call in calls],
        )
        return AssistantTurn(
            content="\n".join(texts) or None, tool_calls=calls, stop_reason=response.stop_reason
        )
