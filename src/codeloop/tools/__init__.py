"""
Tool registry for codeloop.

This module provides a decorator to register tools and a registry to look them up by name.
Each tool is an executor function taking a typed argument model and a :class:`Workspace` and
returning text.  The registry is filled once, when this package is imported, and is read-only
afterwards.
"""

import inspect
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Type,
    TypedDict,
    get_args,
    get_origin,
    get_type_hints,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    model_validator,
)

if TYPE_CHECKING:
    from codeloop.tools.sandbox import Workspace

logger = logging.getLogger(__name__)


class ToolArgs(BaseModel):
    """
    Base class for per-tool argument models.

    Model-issued arguments are untyped data.  Before validation, every declared field that is
    missing or has the wrong type is replaced by a safe default (``""`` for strings, ``None`` for
    optional integers) so a malformed call still reaches its executor.  Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Dict[str, Any]:
        if not isinstance(data, Mapping):
            data = {}
        return {
            name: _coerce_value(data.get(name), field.annotation)
            for name, field in cls.model_fields.items()
        }


def _coerce_value(value: Any, annotation: Any) -> Any:
    if annotation is str:
        return value if isinstance(value, str) else ""
    if int in (annotation, *get_args(annotation)):
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return None
        return None
    return value


class ToolDescriptor(TypedDict):
    """
    What the model is told about a tool.
    """

    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool: its advertised schema plus the executor behind it."""

    name: str
    description: str
    args_model: Type[ToolArgs]
    fn: Callable[[Any, "Workspace"], str]

    def descriptor(self) -> ToolDescriptor:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": _parameters_schema(self.args_model),
        }


_REGISTRY: Dict[str, ToolSpec] = {}

TOOL_REGISTRY: Mapping[str, ToolSpec] = MappingProxyType(_REGISTRY)
"""Read-only view of the registered tools."""


def register_tool(name: str) -> Callable:
    """
    Register an executor under the given tool name.

    Used as a decorator:
        @register_tool("read_file")
        def read_file(args: ReadFileArgs, workspace: Workspace) -> str:
            \"\"\"Read file contents.\"\"\"
            ...

    The argument model is taken from the annotation of the ``args`` parameter and the description
    from the first line of the docstring.

    Parameters
    ----------
    name: str
        The name of the tool.  This must be unique and is what the model uses to call it.
    Returns
    -------
    Callable
        A decorator that registers the function with the given name.
    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    TypeError
        If the function's ``args`` parameter is not annotated with a :class:`ToolArgs` subclass.
    """
    if name in _REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: Callable) -> Callable:
        args_model = get_type_hints(fn).get("args")
        if not (inspect.isclass(args_model) and issubclass(args_model, ToolArgs)):
            raise TypeError(f"Tool '{name}' must annotate 'args' with a ToolArgs subclass.")
        description = inspect.getdoc(fn) or ""
        _REGISTRY[name] = ToolSpec(
            name=name,
            description=description.splitlines()[0] if description else "",
            args_model=args_model,
            fn=fn,
        )
        return fn

    return wrapper


def _json_type(annotation: Any) -> str:
    if get_origin(annotation) is not None:
        annotation = next(arg for arg in get_args(annotation) if arg is not type(None))
    return {str: "string", int: "integer", float: "number", bool: "boolean"}.get(
        annotation, "string"
    )


def _parameters_schema(model: Type[ToolArgs]) -> Dict[str, Any]:
    """JSON schema object for *model*, in the shape function-calling APIs expect."""
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for field_name, field in model.model_fields.items():
        prop: Dict[str, Any] = {"type": _json_type(field.annotation)}
        if field.description:
            prop["description"] = field.description
        properties[field_name] = prop
        if field.is_required():
            required.append(field_name)
    return {"type": "object", "properties": properties, "required": required}


def get_tool_descriptors(registry: Mapping[str, ToolSpec] = TOOL_REGISTRY) -> List[ToolDescriptor]:
    """Descriptors for every registered tool, in registration order."""
    return [spec.descriptor() for spec in registry.values()]


# Built-in tools register themselves on import.
from codeloop.tools import sandbox  # noqa: E402,F401  pylint: disable=wrong-import-position
