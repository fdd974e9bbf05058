"""
Conversation loop for CoTask agents.

The loop keeps exchanging messages with the agent's model until the model answers with content
wrapped in ``<response>...</response>``:

1. Ask the model (system prompt + response-format instruction, thread, tool schemas).
2. Anything but an ``assistant`` reply is a protocol error.
3. Tool calls are executed one after another, in order, and their results are appended together
   with the assistant message before asking again.  Unknown tools get an explanatory result.
4. A reply without tool calls and without a ``<response>`` segment gets a ``Continue...`` nudge.
5. A reply with one or more ``<response>`` segments ends the loop.

The number of model calls is bounded by ``max_turns`` and an optional cancellation event is checked
before every model call and every tool run.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import (
    List,
    Optional,
    Sequence,
)

from cotask.agent.agents import Agent
from cotask.agent.tool_executor import (
    ProtocolError,
    execute_tool,
)
from cotask.config import settings
from cotask.core.schema import Message

logger = logging.getLogger(__name__)

RESPONSE_INSTRUCTION = (
    "Encapsulate your final response to the user with '<response>' xml tag (for example: "
    "'<response>Here comes the text</response>'), all other response will not be transmitted to "
    "the user."
)
CONTINUE_NUDGE = "Continue..."

_RESPONSE_SEGMENT = re.compile(r"<response>(.*?)</response>", re.IGNORECASE | re.DOTALL)

__all__ = [
    "CONTINUE_NUDGE",
    "LoopCancelledError",
    "ProtocolError",
    "RESPONSE_INSTRUCTION",
    "TurnsExhaustedError",
    "extract_response",
    "generate_response",
]


class TurnsExhaustedError(RuntimeError):
    """The model did not produce a final response within the turn budget."""

    def __init__(self, max_turns: int, thread: Sequence[Message]) -> None:
        super().__init__(f"No final response after {max_turns} model call(s)")
        self.max_turns = max_turns
        self.thread = list(thread)


class LoopCancelledError(RuntimeError):
    """The conversation was cancelled through its cancellation event."""


def extract_response(content: str) -> Optional[str]:
    """
    Return the trimmed ``<response>`` segments of *content* joined by newlines.

    Returns *None* if *content* holds no complete segment with text in it.
    """
    segments = [segment.strip() for segment in _RESPONSE_SEGMENT.findall(content)]
    segments = [segment for segment in segments if segment]
    if not segments:
        return None
    return "\n".join(segments)


def _check_cancelled(cancel: Optional[asyncio.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise LoopCancelledError("Conversation cancelled")


async def generate_response(
    thread: Sequence[Message],
    agent: Agent,
    max_turns: Optional[int] = None,
    cancel: Optional[asyncio.Event] = None,
) -> str:
    """
    Drive *agent* from *thread* to its final response text.

    Raises
    ------
    ProtocolError
        If the model replies with another role than ``assistant`` or issues a tool call with
        malformed arguments.
    TurnsExhaustedError
        If there is still no final response after *max_turns* model calls.
    LoopCancelledError
        If *cancel* is set.
    """
    turns = settings.MAX_TURNS if max_turns is None else max_turns
    system_prompt = f"{agent.system_prompt}\n\n{RESPONSE_INSTRUCTION}"
    tool_schemas = agent.tools.schemas()
    current: List[Message] = list(thread)

    for turn in range(1, turns + 1):
        _check_cancelled(cancel)
        reply = await agent.model.generate(system_prompt, current, tool_schemas)

        if reply.role != "assistant":
            raise ProtocolError(f"Unexpected response role. Expected 'assistant', got '{reply.role}'.")

        if reply.tool_calls:
            logger.debug(
                "[%s] turn %d: %d tool call(s): %s",
                agent.phase.value,
                turn,
                len(reply.tool_calls),
                [call.name for call in reply.tool_calls],
            )
            results: List[Message] = []
            # Strictly in issue order
            for call in reply.tool_calls:
                _check_cancelled(cancel)
                results.append(await execute_tool(agent.tools, call))
            current.extend([reply, *results])
            continue

        final = extract_response(reply.content) if reply.content else None
        if final is None:
            logger.debug("[%s] turn %d: no <response> segment, nudging", agent.phase.value, turn)
            current.extend([reply, Message(role="user", content=CONTINUE_NUDGE)])
            continue

        logger.debug("[%s] final response after %d turn(s)", agent.phase.value, turn)
        return final

    raise TurnsExhaustedError(turns, current)
