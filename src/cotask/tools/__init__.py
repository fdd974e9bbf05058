"""
Tool registry for CoTask.

Tools are registered by id through a decorator on a *factory*: a function that receives the
:class:`ToolContext` of the current run (working directory, confirmation prompt, plan runner) and
returns a :class:`ToolDefinition`.  Agents pick the tool ids they need and get their own
:class:`ToolRegistry` from :func:`build_toolset`.

    @register_tool("my_tool")
    def my_tool(ctx: ToolContext) -> ToolDefinition:
        async def execute(params: MyParams) -> str:
            ...
        return ToolDefinition(id="my_tool", name="My Tool", description="...",
                              params_model=MyParams, execute=execute)

Tools return plain text.  Expected failures (missing file, denied command, ...) are described in
that text so the model can adapt; tools only raise for genuinely unexpected problems.
"""

import logging
from dataclasses import (
    dataclass,
    field,
)
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Type,
    TypedDict,
)

from pydantic import BaseModel

from cotask.core.schema import Plan

logger = logging.getLogger(__name__)


class FunctionSpec(TypedDict):
    """Function part of a tool schema."""

    name: str
    description: str
    parameters: Mapping[str, Any]


class ToolSchema(TypedDict):
    """Schema of a tool as exposed to the model provider."""

    type: str
    function: FunctionSpec


@dataclass(frozen=True)
class ToolDefinition:
    """A schema-described capability the model can invoke."""

    id: str
    name: str
    description: str
    params_model: Type[BaseModel]
    execute: Callable[[Any], Awaitable[str]]

    @property
    def parameters(self) -> Dict[str, Any]:
        """JSON schema of the parameters."""
        return self.params_model.model_json_schema()

    def to_schema(self) -> ToolSchema:
        return {
            "type": "function",
            "function": {
                "name": self.id,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


async def _deny(command: str) -> bool:
    logger.warning("No confirmation handler configured; denying '%s'", command)
    return False


@dataclass
class ToolContext:
    """Everything a tool factory may bind its tool to."""

    working_dir: Path
    confirm: Callable[[str], Awaitable[bool]] = field(default=_deny)
    run_plan: Optional[Callable[[Plan], Awaitable[str]]] = None
    command_timeout: int = 300


ToolFactory = Callable[[ToolContext], ToolDefinition]

TOOL_REGISTRY: Dict[str, ToolFactory] = {}
"""Global registry of tool factories, keyed by tool id."""


def register_tool(tool_id: str) -> Callable[[ToolFactory], ToolFactory]:
    """
    Register a tool factory under *tool_id*.

    Raises
    ------
    ValueError
        If a factory with the same id is already registered.
    """
    if tool_id in TOOL_REGISTRY:
        raise ValueError(f"Tool '{tool_id}' is already registered.")
    logger.debug("Registering tool '%s'", tool_id)

    def wrapper(factory: ToolFactory) -> ToolFactory:
        TOOL_REGISTRY[tool_id] = factory
        return factory

    return wrapper


class ToolRegistry:
    """The tools one agent may call, keyed by id."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.id in self._tools:
                raise ValueError(f"Tool '{tool.id}' is already in this toolset.")
            self._tools[tool.id] = tool

    def get(self, tool_id: str) -> Optional[ToolDefinition]:
        return self._tools.get(tool_id)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def ids(self) -> List[str]:
        return list(self._tools)

    def schemas(self) -> List[ToolSchema]:
        """Tool schemas in registration order, as sent to the provider."""
        return [tool.to_schema() for tool in self._tools.values()]


def build_toolset(tool_ids: Iterable[str], ctx: ToolContext) -> ToolRegistry:
    """Instantiate the registered tools *tool_ids* bound to *ctx*."""
    tools = []
    for tool_id in tool_ids:
        factory = TOOL_REGISTRY.get(tool_id)
        if factory is None:
            raise ValueError(f"Tool '{tool_id}' is not registered.")
        tools.append(factory(ctx))
    return ToolRegistry(tools)


# Register the built-in tools.
from cotask.tools import (  # noqa: E402  pylint: disable=wrong-import-position
    command,
    files,
    plan,
    structure,
)

__all__ = [
    "TOOL_REGISTRY",
    "ToolContext",
    "ToolDefinition",
    "ToolRegistry",
    "ToolSchema",
    "build_toolset",
    "command",
    "files",
    "plan",
    "register_tool",
    "structure",
]
