"""
Model provider interface for CoTask.

This module is the only place that *directly* calls an LLM.  Everything else (conversation loop,
tools, scheduler) stays model-agnostic and talks in terms of :class:`~cotask.core.schema.Message`
threads and :class:`~cotask.core.schema.Completion` results.

We support two back-ends out of the box:

1. **OpenAI** Chat Completions (and OpenAI-compatible servers via ``OPENAI_BASE_URL``).
2. **Anthropic** Messages.

Additional providers can be added by subclassing :class:`BaseProvider` and registering via
:func:`register_provider`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

import httpx

from cotask.config import settings
from cotask.core.schema import (
    Completion,
    FinishReason,
    Message,
    ToolCall,
)
from cotask.tools import ToolSchema

logger = logging.getLogger(__name__)

# Anthropic requires an explicit output limit.
ANTHROPIC_MAX_TOKENS = 8192
# Opening user turn for threads that were trimmed down to an assistant reply.
CONTINUE_TEXT = "Continue..."


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: dict[str, Type["BaseProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["BaseProvider"]) -> Type["BaseProvider"]:
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_provider(name: str | None = None) -> "BaseProvider":
    """
    Factory that returns an instantiated provider.

    Fallback order:
    1. *name* arg
    2. ``settings.PROVIDER`` env option
    """

    target = name or settings.PROVIDER
    cls = _PROVIDER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Provider '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseProvider(ABC):
    """Abstract provider: (system prompt, thread, tool schemas) -> one completion."""

    @abstractmethod
    async def complete(
        self,
        model: str,
        system_prompt: str,
        thread: Sequence[Message],
        tools: Sequence[ToolSchema] = (),
    ) -> Completion:
        """Return the next completion for *thread*."""


# ---------------------------------------------------------------------------
# Concrete providers
# ---------------------------------------------------------------------------
_OPENAI_FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
}


@register_provider("openai")
class OpenAIProvider(BaseProvider):
    """OpenAI Chat Completions with tool calling (and the deprecated function_call shape)."""

    def __init__(self, client: Any = None) -> None:
        if client is None:
            import openai  # pylint: disable=import-outside-toplevel

            client = openai.AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
                timeout=httpx.Timeout(settings.REQUEST_TIMEOUT),
            )
        self._client = client

    @staticmethod
    def encode_message(msg: Message) -> Dict[str, Any]:
        """Convert a thread message into the Chat Completions wire shape."""
        if msg.role == "tool":
            return {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content or ""}
        if msg.role == "function":
            return {"role": "function", "name": msg.name, "content": msg.content or ""}

        payload: Dict[str, Any] = {"role": msg.role, "content": msg.content}
        calls = msg.tool_calls or []
        legacy = [call for call in calls if call.legacy]
        current = [call for call in calls if not call.legacy]
        if legacy:
            payload["function_call"] = {"name": legacy[0].name, "arguments": legacy[0].arguments}
        if current:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in current
            ]
        return payload

    @staticmethod
    def decode_choice(choice: Any) -> Completion:
        """Fold both call shapes of a Chat Completions choice into one message."""
        raw = choice.message
        calls: List[ToolCall] = [
            ToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments)
            for call in (getattr(raw, "tool_calls", None) or [])
        ]
        function_call = getattr(raw, "function_call", None)
        if function_call is not None:
            calls.append(
                ToolCall(
                    id=function_call.name,
                    name=function_call.name,
                    arguments=function_call.arguments,
                    legacy=True,
                )
            )

        message = Message(role=raw.role, content=raw.content, tool_calls=calls or None)
        reason = _OPENAI_FINISH_REASONS.get(choice.finish_reason or "stop", FinishReason.STOP)
        return Completion(message=message, finish_reason=reason)

    async def complete(
        self,
        model: str,
        system_prompt: str,
        thread: Sequence[Message],
        tools: Sequence[ToolSchema] = (),
    ) -> Completion:
        kwargs: Dict[str, Any] = {
            "model": model,
            "temperature": settings.TEMPERATURE,
            "messages": [{"role": "system", "content": system_prompt}]
            + [self.encode_message(msg) for msg in thread],
        }
        if tools:
            kwargs["tools"] = list(tools)

        resp = await self._client.chat.completions.create(**kwargs)
        if not resp.choices:
            logger.warning("OpenAI returned no choices for model '%s'", model)
            return Completion(message=Message(role="assistant"), finish_reason=FinishReason.NO_CHOICES)

        logger.debug("OpenAI response: %s", resp.choices[0].message)
        return self.decode_choice(resp.choices[0])


_ANTHROPIC_STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "tool_use": FinishReason.TOOL_CALLS,
    "max_tokens": FinishReason.LENGTH,
    "refusal": FinishReason.CONTENT_FILTER,
}


def _parse_arguments(arguments: str) -> Any:
    try:
        return json.loads(arguments or "{}")
    except json.JSONDecodeError:
        return {}


@register_provider("anthropic")
class AnthropicProvider(BaseProvider):
    """Anthropic Messages API with tool use."""

    def __init__(self, client: Any = None) -> None:
        if client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            client = anthropic.AsyncAnthropic(
                api_key=settings.ANTHROPIC_API_KEY,
                timeout=httpx.Timeout(settings.REQUEST_TIMEOUT),
            )
        self._client = client

    @staticmethod
    def encode_thread(thread: Sequence[Message]) -> List[Dict[str, Any]]:
        """
        Convert a thread into alternating user/assistant turns of content blocks.

        Tool and function results become ``tool_result`` blocks of a user turn; consecutive user
        turns are merged.
        """
        encoded: List[Dict[str, Any]] = []
        for msg in thread:
            blocks: List[Dict[str, Any]] = []
            if msg.role in ("tool", "function"):
                role = "user"
                blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": msg.tool_call_id or msg.name,
                        "content": msg.content or "",
                    }
                )
            else:
                role = "assistant" if msg.role == "assistant" else "user"
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for call in msg.tool_calls or []:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": _parse_arguments(call.arguments),
                        }
                    )
            if not blocks:
                continue
            if encoded and encoded[-1]["role"] == role:
                encoded[-1]["content"].extend(blocks)
            else:
                encoded.append({"role": role, "content": blocks})
        # The Messages API requires the first turn to come from the user.
        if encoded and encoded[0]["role"] == "assistant":
            encoded.insert(0, {"role": "user", "content": [{"type": "text", "text": CONTINUE_TEXT}]})
        return encoded

    @staticmethod
    def encode_tools(tools: Sequence[ToolSchema]) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool["function"]["name"],
                "description": tool["function"]["description"],
                "input_schema": tool["function"]["parameters"],
            }
            for tool in tools
        ]

    @staticmethod
    def decode_response(response: Any) -> Completion:
        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input)))

        if not texts and not calls and response.stop_reason is None:
            return Completion(message=Message(role="assistant"), finish_reason=FinishReason.NO_CHOICES)

        message = Message(
            role=response.role,
            content="\n".join(texts) if texts else None,
            tool_calls=calls or None,
        )
        reason = _ANTHROPIC_STOP_REASONS.get(response.stop_reason, FinishReason.STOP)
        return Completion(message=message, finish_reason=reason)

    async def complete(
        self,
        model: str,
        system_prompt: str,
        thread: Sequence[Message],
        tools: Sequence[ToolSchema] = (),
    ) -> Completion:
        kwargs: Dict[str, Any] = {
            "model": model,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "temperature": settings.TEMPERATURE,
            "system": system_prompt,
            "messages": self.encode_thread(thread),
        }
        if tools:
            kwargs["tools"] = self.encode_tools(tools)

        response = await self._client.messages.create(**kwargs)
        logger.debug("Anthropic response: %s", response)
        return self.decode_response(response)
