"""
Schema definitions for model <-> agent <-> tool messages and for task plans.

These data models serve as the contract between the model provider, the conversation loop, the
tools and the task scheduler.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

from enum import Enum
from typing import (
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

Role = Literal["system", "user", "assistant", "tool", "function"]


class Phase(str, Enum):
    """Stages of the task pipeline, each bound to one agent."""

    PLAN = "plan"
    RESEARCH = "research"
    DESIGN = "design"
    CODE = "code"
    REVIEW = "review"
    TEST = "test"
    DOCUMENT = "document"


class FinishReason(str, Enum):
    """Why the provider stopped generating."""

    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    NO_CHOICES = "no_choices"


class ToolCall(BaseModel):
    """A call that the model wants the agent to execute."""

    id: str = Field(..., description="Call id the tool result must reference")
    name: str = Field(..., description="Registered tool id")
    arguments: str = Field("{}", description="Raw JSON-encoded arguments")
    legacy: bool = Field(False, description="Decoded from the deprecated single function_call")


class Message(BaseModel):
    """One entry of a conversation thread."""

    role: Role
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None


class Completion(BaseModel):
    """A single completion returned by a model provider."""

    message: Message
    finish_reason: FinishReason = FinishReason.STOP


class Task(BaseModel):
    """A unit of work for one phase agent."""

    phase: str = Field(..., description="Phase tag, e.g. 'code' or 'review'")
    task: str = Field(..., description="The task to be executed")
    required_output: str = Field("", description="Output handed on to the following tasks")


class Plan(BaseModel):
    """An ordered task sequence, executed strictly in order."""

    tasks: List[Task] = Field(default_factory=list)


class TaskStatus(str, Enum):
    """Outcome of one scheduled task."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TaskOutcome(BaseModel):
    """What happened to a single task of a plan (for logging / reporting)."""

    task: Task
    status: TaskStatus
    response: Optional[str] = None
    error: Optional[str] = None


class PlanReport(BaseModel):
    """Per-task outcomes of a plan execution, in plan order."""

    outcomes: List[TaskOutcome] = Field(default_factory=list)

    @property
    def all_completed(self) -> bool:
        return all(o.status is TaskStatus.COMPLETED for o in self.outcomes)

    def render(self) -> str:
        """Short text summary handed back to the planning agent."""
        lines = ["All tasks completed." if self.all_completed else "Not all tasks completed."]
        for outcome in self.outcomes:
            line = f"- [{outcome.task.phase.upper()}] {outcome.task.task}: {outcome.status.value}"
            if outcome.error:
                line += f" ({outcome.error})"
            lines.append(line)
        return "\n".join(lines)
