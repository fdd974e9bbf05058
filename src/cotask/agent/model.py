"""
Model references used by the agents.

An :class:`AIModel` binds a provider, a model name and a context budget.  It trims the thread to the
budget before every request and applies the retry policy for transient provider outcomes:

* no choices            -> retried, then :class:`RetryLimitExceededError`
* length-truncated      -> truncated message appended and retried, then :class:`ContentTooLongError`
* content filtered      -> :class:`ContentFilteredError`, never retried
"""

import logging
from dataclasses import dataclass
from typing import (
    List,
    Sequence,
)

from cotask.agent.provider import (
    BaseProvider,
    load_provider,
)
from cotask.config import settings
from cotask.core.budget import fit_thread
from cotask.core.schema import (
    FinishReason,
    Message,
)
from cotask.tools import ToolSchema

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Base class for fatal provider outcomes."""


class RetryLimitExceededError(ProviderError):
    """The provider kept returning no choices."""


class ContentTooLongError(RetryLimitExceededError):
    """The provider kept truncating its completion."""


class ContentFilteredError(ProviderError):
    """The provider refused the request."""


class AIModel:
    """A provider-backed model with a maximum context budget."""

    def __init__(
        self,
        provider: BaseProvider,
        name: str,
        max_context: int,
        max_retries: int | None = None,
    ) -> None:
        self.provider = provider
        self.name = name
        self.max_context = max_context
        self.max_retries = settings.MAX_PROVIDER_RETRIES if max_retries is None else max_retries

    def __repr__(self) -> str:
        return f"AIModel({self.name!r}, max_context={self.max_context})"

    async def generate(
        self,
        system_prompt: str,
        thread: Sequence[Message],
        tools: Sequence[ToolSchema] = (),
    ) -> Message:
        """Return the next assistant message for *thread*."""
        current: List[Message] = list(thread)
        retries = 0
        while True:
            current = fit_thread(system_prompt, tools, current, self.max_context)
            logger.debug("Requesting '%s' with %d message(s)", self.name, len(current))
            completion = await self.provider.complete(self.name, system_prompt, current, tools)

            if completion.finish_reason is FinishReason.CONTENT_FILTER:
                raise ContentFilteredError("Request not allowed - content filter")

            if completion.finish_reason is FinishReason.NO_CHOICES:
                if retries >= self.max_retries:
                    raise RetryLimitExceededError("Too many retries")
                retries += 1
                logger.warning("No choices from '%s', retry %d/%d", self.name, retries, self.max_retries)
                continue

            if completion.finish_reason is FinishReason.LENGTH:
                if retries >= self.max_retries:
                    raise ContentTooLongError("Too many retries - too long content!")
                retries += 1
                logger.warning(
                    "Truncated completion from '%s', retry %d/%d", self.name, retries, self.max_retries
                )
                # Half-written tool calls can't be answered; keep only the text.
                current = [*current, completion.message.model_copy(update={"tool_calls": None})]
                continue

            return completion.message


@dataclass(frozen=True)
class ModelSet:
    """The model tiers the agents are assigned to."""

    fast: AIModel
    quality: AIModel
    online: AIModel


def load_models(provider: BaseProvider | None = None) -> ModelSet:
    """Build the configured model tiers on one shared provider."""
    provider = provider or load_provider()
    return ModelSet(
        fast=AIModel(provider, settings.FAST_MODEL, settings.FAST_MODEL_MAX_CONTEXT),
        quality=AIModel(provider, settings.QUALITY_MODEL, settings.QUALITY_MODEL_MAX_CONTEXT),
        online=AIModel(provider, settings.ONLINE_MODEL, settings.ONLINE_MODEL_MAX_CONTEXT),
    )
