"""The planning agent's hand-off: turn a task sequence into a plan and run it."""

import logging
from typing import List

from pydantic import (
    BaseModel,
    Field,
)

from cotask.core.schema import (
    Phase,
    Plan,
    Task,
)
from cotask.tools import (
    ToolContext,
    ToolDefinition,
    register_tool,
)

logger = logging.getLogger(__name__)

_PHASE_HELP = (
    "The phase of software development the task belongs to. 'research' can find information, "
    "'design' is for creating a software architecture, 'code' makes changes to the codebase, "
    "'review' reviews the code changes against coding standards, 'test' checks that nothing broke "
    "and the requirements are met and 'document' documents the code changes."
)


class PlannedTask(BaseModel):
    phase: str = Field(..., description=_PHASE_HELP, examples=[p.value for p in Phase][1:])
    task: str = Field(
        ...,
        description="The task to be executed.",
        examples=["Implement the user management system."],
    )
    required_output: str = Field(
        ...,
        description="The output required from the executed task. It is passed on to the next "
        "tasks.",
        examples=["Steps to implement the next-intl package: ..."],
    )


class CreatePlanParams(BaseModel):
    task_sequence: List[PlannedTask] = Field(
        ...,
        description="The sequence of tasks to be executed. Only define the tasks that are "
        "required.",
    )


@register_tool("create_task_plan")
def create_task_plan(ctx: ToolContext) -> ToolDefinition:
    async def execute(params: CreatePlanParams) -> str:
        if ctx.run_plan is None:
            return "No task scheduler is available. The plan was not executed."

        plan = Plan(tasks=[Task(**planned.model_dump()) for planned in params.task_sequence])
        logger.info("Executing plan with %d task(s)", len(plan.tasks))
        return await ctx.run_plan(plan)

    return ToolDefinition(
        id="create_task_plan",
        name="Create Plan and execute the tasks",
        description="Creates a task plan as a task sequence and executes the tasks step by step.",
        params_model=CreatePlanParams,
        execute=execute,
    )
