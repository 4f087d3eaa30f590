"""Dispatches tool calls registered in ``codeloop.tools`` and wraps errors."""

import json
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
)

from pydantic import ValidationError

from codeloop.common import preview
from codeloop.core.schema import (
    ToolCall,
    ToolResultTurn,
)
from codeloop.tools import (
    TOOL_REGISTRY,
    ToolDescriptor,
    ToolSpec,
    get_tool_descriptors,
)
from codeloop.tools.sandbox import Workspace

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run."""


def parse_arguments(name: str, raw: Any) -> Dict[str, Any]:
    """
    Turn a model-issued arguments payload into a dict.

    JSON strings are decoded; ``None`` or an empty string means "no arguments".

    Raises
    ------
    ToolExecutionError
        If the payload is not a mapping (after decoding).
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ToolExecutionError(
            f"Invalid arguments for tool '{name}': expected an object, got {type(raw).__name__}"
        )
    return dict(raw)


def execute_tool(
    name: str,
    args: Any,
    workspace: Workspace,
    registry: Mapping[str, ToolSpec] = TOOL_REGISTRY,
) -> str:
    """
    Look up *name* in the registry and invoke it with *args*.

    Parameters
    ----------
    name:
        The registered tool name.
    args:
        Raw arguments from the model: a mapping, a JSON string or ``None``.  Fields are coerced
        by the tool's argument model.
    workspace:
        Directory and limits the executor is confined to.
    registry:
        Where to look the tool up.

    Returns
    -------
    str
        Whatever text the executor returns.

    Raises
    ------
    ToolExecutionError
        If the tool is missing or its arguments cannot be turned into its argument model.
    """
    spec = registry.get(name)
    if spec is None:
        raise ToolExecutionError(f"Tool '{name}' is not registered.")

    payload = parse_arguments(name, args)
    try:
        typed_args = spec.args_model.model_validate(payload)
    except ValidationError as exc:
        raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc

    logger.debug("Executing tool '%s' with args=%s", name, typed_args)
    return spec.fn(typed_args, workspace)


def _log_trace(line: str) -> None:
    logger.info("%s", line)


class ToolDispatcher:
    """
    Routes tool calls to their executors and packages the results.

    Dispatch never raises for tool-level problems: unknown tools, malformed arguments and executor
    failures all become the text of the returned :class:`ToolResultTurn`.
    """

    def __init__(
        self,
        workspace: Workspace,
        registry: Mapping[str, ToolSpec] = TOOL_REGISTRY,
        trace: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.workspace = workspace
        self.registry = registry
        self._trace = trace or _log_trace

    @property
    def descriptors(self) -> List[ToolDescriptor]:
        return get_tool_descriptors(self.registry)

    def dispatch(self, call: ToolCall) -> ToolResultTurn:
        """Execute one tool call and return its result turn."""
        if call.name not in self.registry:
            output = f"Unknown tool: {call.name}"
        else:
            try:
                output = execute_tool(call.name, call.args, self.workspace, self.registry)
            except ToolExecutionError as exc:
                logger.warning("Tool call rejected: %s", exc)
                output = f"Error: {exc}"
            except Exception as exc:  # noqa: BLE001  pylint: disable=broad-except
                logger.exception("Unhandled error in tool '%s'", call.name)
                output = f"Error: {exc}"

        self._trace(f"> {call.name}: {preview(output)}")
        return ToolResultTurn(tool_call_id=call.id, name=call.name, content=output)

    def dispatch_all(self, calls: Iterable[ToolCall]) -> Iterator[ToolResultTurn]:
        """Dispatch *calls* one by one, in the order given."""
        for call in calls:
            yield self.dispatch(call)
