"""
Sequential task scheduler.

Runs the tasks of a :class:`~cotask.core.schema.Plan` strictly in order, each through the
conversation loop of the agent registered for its phase.  A failing task is logged and recorded;
it never stops the tasks after it.  Once the cancellation event is set, the remaining tasks are
skipped.
"""

import asyncio
import logging
from typing import (
    Dict,
    Mapping,
    Optional,
)

from cotask.agent.agent_loop import (
    LoopCancelledError,
    generate_response,
)
from cotask.agent.agents import (
    Agent,
    PipelineState,
)
from cotask.common import (
    AnsiColors,
    colored_print,
    phase_banner,
)
from cotask.core.schema import (
    Message,
    Plan,
    PlanReport,
    Task,
    TaskOutcome,
    TaskStatus,
)

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Owns the shared pipeline state and runs plans against the agent roster."""

    def __init__(
        self,
        state: Optional[PipelineState] = None,
        max_turns: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        self.state = state or PipelineState()
        self.max_turns = max_turns
        self.cancel = cancel
        self._agents: Dict[str, Agent] = {}

    @property
    def agents(self) -> Mapping[str, Agent]:
        return dict(self._agents)

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    def register_agents(self, agents: Mapping[str, Agent]) -> None:
        """Install the agent roster.  Can only be done once per scheduler."""
        if self._agents:
            raise RuntimeError("Agents are already registered.")
        self._agents = dict(agents)

    async def run_task(self, task: Task) -> TaskOutcome:
        agent = self._agents.get(task.phase.lower())
        if agent is None:
            logger.warning(
                "Mistake on task scheduling: phase %s not found, skipping '%s'",
                task.phase.upper(),
                task.task,
            )
            return TaskOutcome(task=task, status=TaskStatus.SKIPPED, error="unknown phase")

        colored_print(phase_banner("📋", task.phase, f"Starting for '{task.task}'"), AnsiColors.BLUE)
        try:
            prompt = agent.to_user_prompt(task, self.state)
            response = await generate_response(
                [Message(role="user", content=prompt)],
                agent,
                max_turns=self.max_turns,
                cancel=self.cancel,
            )
            agent.on_response(self.state, response)
        except LoopCancelledError as exc:
            logger.warning("Task cancelled [%s]: %s", task.phase.upper(), task.task)
            colored_print(phase_banner("❌", task.phase, f"Cancelled '{task.task}'"), AnsiColors.RED)
            return TaskOutcome(task=task, status=TaskStatus.FAILED, error=str(exc))
        except Exception as exc:  # noqa: BLE001  pylint: disable=broad-except
            logger.exception("Task failed [%s]: %s", task.phase.upper(), task.task)
            colored_print(phase_banner("❌", task.phase, task.task), AnsiColors.RED)
            return TaskOutcome(task=task, status=TaskStatus.FAILED, error=str(exc))

        colored_print(phase_banner("✅", task.phase, task.task), AnsiColors.GREEN)
        return TaskOutcome(task=task, status=TaskStatus.COMPLETED, response=response)

    async def run_plan(self, plan: Plan) -> PlanReport:
        """Execute every task of *plan* in order and report each outcome."""
        report = PlanReport()
        for task in plan.tasks:
            if self.cancelled:
                logger.info("Plan cancelled, skipping [%s]: %s", task.phase.upper(), task.task)
                report.outcomes.append(
                    TaskOutcome(task=task, status=TaskStatus.SKIPPED, error="cancelled")
                )
                continue
            report.outcomes.append(await self.run_task(task))
        logger.info(
            "Plan finished: %d task(s), %d completed",
            len(report.outcomes),
            sum(o.status is TaskStatus.COMPLETED for o in report.outcomes),
        )
        return report

    async def run_plan_text(self, plan: Plan) -> str:
        """Execute *plan* and return its summary (used by the task plan tool)."""
        report = await self.run_plan(plan)
        return report.render()
