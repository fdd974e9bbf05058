"""Dispatches model-issued tool calls to the agent's toolset and wraps the results."""

import json
import logging
from typing import Any

from pydantic import ValidationError

from cotask.core.schema import (
    Message,
    ToolCall,
)
from cotask.tools import ToolRegistry

logger = logging.getLogger(__name__)


class ProtocolError(RuntimeError):
    """The provider broke the conversation contract."""


class ToolProtocolError(ProtocolError):
    """A tool call carried arguments that are not valid JSON."""


class ToolExecutionError(RuntimeError):
    """Raised when a tool fails unexpectedly."""


def tool_result(call: ToolCall, content: str) -> Message:
    """Wrap *content* as the result message bound to *call*."""
    if call.legacy:
        return Message(role="function", name=call.name, content=content)
    return Message(role="tool", tool_call_id=call.id, content=content)


def unknown_tool_message(name: str) -> str:
    return f"Tool '{name}' not found. Please check your configuration."


async def execute_tool(registry: ToolRegistry, call: ToolCall) -> Message:
    """
    Look up *call* in *registry*, run it and return the bound result message.

    Parameters
    ----------
    registry:
        The calling agent's toolset.
    call:
        The tool call as issued by the model.

    Returns
    -------
    Message
        A ``tool`` message (``function`` for legacy calls) carrying the tool's text.  Unknown tools
        and invalid arguments produce an explanatory text instead of an error, so the model can
        correct itself.

    Raises
    ------
    ToolProtocolError
        If the arguments are not valid JSON.
    ToolExecutionError
        If the tool raises.
    """

    tool = registry.get(call.name)
    if tool is None:
        logger.warning("Unexpected tool call to function '%s'", call.name)
        return tool_result(call, unknown_tool_message(call.name))

    try:
        raw_args: Any = json.loads(call.arguments or "{}")
    except json.JSONDecodeError as exc:
        raise ToolProtocolError(
            f"Malformed arguments for tool '{call.name}' (call {call.id}): {exc}"
        ) from exc

    try:
        params = tool.params_model.model_validate(raw_args)
    except ValidationError as exc:
        logger.info("Invalid arguments for tool '%s': %s", call.name, exc)
        return tool_result(call, f"Invalid arguments for tool '{call.name}': {exc}")

    logger.info("[ACTION] Running %s", tool.name)
    logger.debug("Executing tool '%s' with args=%s", call.name, raw_args)
    try:
        content = await tool.execute(params)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", call.name)
        raise ToolExecutionError(f"Tool '{call.name}' raised an error: {exc}") from exc

    return tool_result(call, content)
