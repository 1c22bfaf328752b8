"""
Tool registry for Notewright.

This module provides a decorator to register tools in a package-wide catalogue and a
:class:`ToolRegistry` that binds a selection of them to their model-facing descriptions.
Tools are async functions taking a validated pydantic argument model and the run context,
and returning a :class:`~notewright.core.schema.ToolOutput`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Type,
)

from pydantic import (
    BaseModel,
    Field,
)

from notewright.core.schema import ToolOutput

if TYPE_CHECKING:
    from notewright.agent.context import RunContext

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any, "RunContext"], Awaitable[ToolOutput]]


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool: its argument model and its handler."""

    name: str
    args_model: Type[BaseModel]
    handler: ToolHandler


TOOL_REGISTRY: Dict[str, ToolSpec] = {}
"""Global catalogue of tool specs, keyed by name."""


def register_tool(name: str, args_model: Type[BaseModel]) -> Callable:
    """
    Register a tool handler with the given name and argument model.

    The name must be unique and is what the model uses to call the tool.  The function is
    registered as a decorator, so it can be used like this:

        @register_tool("write", WriteArgs)
        async def write_note(args: WriteArgs, ctx: RunContext) -> ToolOutput:
            ...

    Parameters
    ----------
    name: str
        The name of the tool.
    args_model: Type[BaseModel]
        Pydantic model the raw arguments are validated against before the handler runs.

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: ToolHandler) -> ToolHandler:
        TOOL_REGISTRY[name] = ToolSpec(name=name, args_model=args_model, handler=fn)
        return fn

    return wrapper


class ToolDescription(BaseModel):
    """Model-facing documentation of a tool and its arguments."""

    description: str
    arguments: Dict[str, str] = Field(default_factory=dict)


class ToolDeclaration(BaseModel):
    """What the provider sends to the model for one tool."""

    name: str
    description: str
    parameters: Dict[str, Any]


def _strip_titles(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {key: _strip_titles(value) for key, value in schema.items() if key != "title"}
    if isinstance(schema, list):
        return [_strip_titles(item) for item in schema]
    return schema


def build_parameters_schema(
    args_model: Type[BaseModel], arguments: Mapping[str, str]
) -> Dict[str, Any]:
    """JSON schema of *args_model* (by alias) with argument docs injected."""
    schema = _strip_titles(args_model.model_json_schema(by_alias=True))
    properties = schema.setdefault("properties", {})
    for arg_name, doc in arguments.items():
        if arg_name in properties:
            properties[arg_name]["description"] = doc
    schema.setdefault("type", "object")
    return schema


class Tool:
    """A tool spec bound to its description: what the loop dispatches to."""

    def __init__(self, spec: ToolSpec, description: ToolDescription) -> None:
        self.spec = spec
        self.declaration = ToolDeclaration(
            name=spec.name,
            description=description.description,
            parameters=build_parameters_schema(spec.args_model, description.arguments),
        )

    @property
    def name(self) -> str:
        return self.spec.name

    async def run(self, arguments: Mapping[str, Any], ctx: "RunContext") -> ToolOutput:
        """Validate *arguments* and invoke the handler.  Validation errors propagate."""
        args = self.spec.args_model.model_validate(dict(arguments))
        return await self.spec.handler(args, ctx)


class ToolRegistry:
    """
    The set of tools offered to the model in one run.

    Descriptions are injected at construction time so prompt wording stays data, not code.
    """

    def __init__(
        self,
        names: Iterable[str] | None = None,
        descriptions: Mapping[str, ToolDescription] | None = None,
    ) -> None:
        if descriptions is None:
            from notewright.tools.descriptions import (  # pylint: disable=import-outside-toplevel
                DEFAULT_TOOL_DESCRIPTIONS,
            )

            descriptions = DEFAULT_TOOL_DESCRIPTIONS

        selected = list(TOOL_REGISTRY.keys()) if names is None else list(names)
        self._tools: Dict[str, Tool] = {}
        for name in selected:
            if name in self._tools:
                raise ValueError(f"Tool '{name}' is listed twice.")
            spec = TOOL_REGISTRY.get(name)
            if spec is None:
                raise ValueError(f"Tool '{name}' is not registered.")
            description = descriptions.get(name) or ToolDescription(description=name)
            self._tools[name] = Tool(spec, description)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> List[str]:
        return list(self._tools.keys())

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def declarations(self) -> List[ToolDeclaration]:
        return [tool.declaration for tool in self._tools.values()]


# Tool modules register themselves on import.
from notewright.tools import (  # noqa: E402  pylint: disable=wrong-import-position
    session_tools,
    vault_tools,
)

__all__ = [
    "TOOL_REGISTRY",
    "Tool",
    "ToolDeclaration",
    "ToolDescription",
    "ToolRegistry",
    "ToolSpec",
    "register_tool",
    "session_tools",
    "vault_tools",
]
