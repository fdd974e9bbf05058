"""
Context-window budgeting for conversation threads.

Token usage is estimated, not counted: one token is taken to be about three characters.  Before each
provider call the thread history is trimmed (oldest first) so that the estimate stays within the
model's configured context budget.  The system prompt and the tool schemas are never trimmed.
"""

import json
import logging
from typing import (
    Any,
    List,
    Sequence,
)

from cotask.core.schema import Message

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 3
BASE_OVERHEAD = 40
MESSAGE_OVERHEAD = 20


def estimate_tokens(text: str) -> int:
    """Rough token estimate for *text*."""
    return round(len(text) / CHARS_PER_TOKEN)


def _serialize(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def base_cost(system_prompt: str, tool_schemas: Sequence[Any]) -> int:
    """Fixed cost of a call: system prompt + serialized tool schemas + overhead."""
    return (
        estimate_tokens(system_prompt) + estimate_tokens(_serialize(list(tool_schemas))) + BASE_OVERHEAD
    )


def thread_cost(thread: Sequence[Message]) -> int:
    """Estimated cost of the message contents of *thread*."""
    return sum(estimate_tokens(_serialize(msg.content)) for msg in thread)


def message_cost(msg: Message) -> int:
    """Cost charged for *msg* while trimming."""
    if msg.content is None:
        # Tool-call-only messages: charge the whole serialized message.
        return len(_serialize(msg.model_dump(exclude_none=True))) * CHARS_PER_TOKEN
    return len(msg.content) * CHARS_PER_TOKEN + MESSAGE_OVERHEAD


_RESULT_ROLES = ("tool", "function")


def _drop_unpaired_head(kept: List[Message]) -> List[Message]:
    # Results whose call was trimmed away can't be sent; the thread should open on a user turn.
    start = 0
    while start < len(kept) and kept[start].role in _RESULT_ROLES:
        start += 1
    head = start
    while head < len(kept) and kept[head].role != "user":
        head += 1
    if head < len(kept):
        start = head
    return kept[start:]


def trim_thread(thread: Sequence[Message], allowance: int) -> List[Message]:
    """
    Keep the most recent messages of *thread* that fit into *allowance*.

    Messages are considered newest first; the first one that would push the running total past the
    allowance is dropped together with everything older.  Tool results left at the head without
    their call are dropped as well, and so are leading assistant turns when a user message follows.
    The kept messages are returned in chronological order and *thread* itself is left untouched.
    """
    kept: List[Message] = []
    total = 0
    for msg in reversed(thread):
        total += message_cost(msg)
        if total > allowance:
            break
        kept.append(msg)
    kept.reverse()
    if len(kept) < len(thread):
        kept = _drop_unpaired_head(kept)
    return kept


def fit_thread(
    system_prompt: str,
    tool_schemas: Sequence[Any],
    thread: Sequence[Message],
    max_context: int,
) -> List[Message]:
    """Return *thread*, trimmed if the whole call would exceed *max_context*."""
    base = base_cost(system_prompt, tool_schemas)
    estimated = base + thread_cost(thread)
    if estimated <= max_context:
        return list(thread)

    trimmed = trim_thread(thread, max_context - base)
    logger.warning(
        "Context estimate %d exceeds budget %d; trimmed thread from %d to %d messages",
        estimated,
        max_context,
        len(thread),
        len(trimmed),
    )
    return trimmed
