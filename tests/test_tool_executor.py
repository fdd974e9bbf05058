"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

from pathlib import Path

import pytest
from pydantic import BaseModel

from cotask.agent.tool_executor import (
    ProtocolError,
    ToolExecutionError,
    ToolProtocolError,
    execute_tool,
)
from cotask.core.schema import ToolCall
from cotask.tools import (
    TOOL_REGISTRY,
    ToolContext,
    ToolDefinition,
    build_toolset,
    register_tool,
)


class AddParams(BaseModel):
    a: int
    b: int


# This is a stub tool for testing purposes.
@register_tool("add")
def _add(ctx: ToolContext) -> ToolDefinition:
    async def execute(params: AddParams) -> str:
        if params.a < 0:
            raise RuntimeError("negative numbers are not supported")
        return str(params.a + params.b)

    return ToolDefinition(
        id="add",
        name="Add",
        description="Return the sum of two integers (used only for tests).",
        params_model=AddParams,
        execute=execute,
    )


@pytest.fixture
def registry(tmp_path: Path):
    return build_toolset(["add"], ToolContext(working_dir=tmp_path))


@pytest.mark.asyncio
async def test_execute_tool_success(registry) -> None:
    """Executor should return a tool result bound to the call id."""

    result = await execute_tool(registry, ToolCall(id="call_1", name="add", arguments='{"a": 2, "b": 3}'))

    assert result.role == "tool"
    assert result.tool_call_id == "call_1"
    assert result.content == "5"


@pytest.mark.asyncio
async def test_execute_tool_missing(registry) -> None:
    """Executor should answer with a placeholder for an unknown tool."""

    result = await execute_tool(registry, ToolCall(id="call_2", name="not_a_tool", arguments="{}"))

    assert result.tool_call_id == "call_2"
    assert "not_a_tool" in (result.content or "")
    assert "not found" in (result.content or "")


@pytest.mark.asyncio
async def test_execute_tool_bad_args(registry) -> None:
    """Arguments that don't match the schema are reported back, not raised."""

    result = await execute_tool(registry, ToolCall(id="call_3", name="add", arguments='{"a": 2}'))

    assert "Invalid arguments" in (result.content or "")


@pytest.mark.asyncio
async def test_execute_tool_malformed_json(registry) -> None:
    """Executor should raise *ToolProtocolError* for arguments that are not JSON."""

    try:
        await execute_tool(registry, ToolCall(id="call_4", name="add", arguments="{a: 2"))
    except ToolProtocolError as exc:
        assert isinstance(exc, ProtocolError)
        assert "add" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("ToolProtocolError was not raised")


@pytest.mark.asyncio
async def test_execute_tool_crash(registry) -> None:
    """Executor should raise *ToolExecutionError* when the tool itself fails."""

    with pytest.raises(ToolExecutionError, match="negative numbers"):
        await execute_tool(registry, ToolCall(id="call_5", name="add", arguments='{"a": -1, "b": 3}'))


@pytest.mark.asyncio
async def test_legacy_call_gets_function_result(registry) -> None:
    call = ToolCall(id="add", name="add", arguments='{"a": 1, "b": 1}', legacy=True)

    result = await execute_tool(registry, call)

    assert result.role == "function"
    assert result.name == "add"
    assert result.tool_call_id is None
    assert result.content == "2"


def test_register_duplicate_id() -> None:
    with pytest.raises(ValueError, match="already registered"):
        register_tool("add")


def test_builtin_tools_registered() -> None:
    assert {
        "open_file",
        "modify_file",
        "move_file",
        "delete_file",
        "directory_structure",
        "execute_command",
        "create_task_plan",
    } <= set(TOOL_REGISTRY)


def test_toolset_schemas(registry) -> None:
    (schema,) = registry.schemas()

    assert schema["type"] == "function"
    assert schema["function"]["name"] == "add"
    assert set(schema["function"]["parameters"]["required"]) == {"a", "b"}


def test_build_toolset_unknown_id(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="not registered"):
        build_toolset(["nope"], ToolContext(working_dir=tmp_path))
