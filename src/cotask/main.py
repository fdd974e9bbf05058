"""
CoTask entry point.

This file handles startup concerns (arg-parsing, settings, logging), builds the agent roster and
hands the user's request to the planning agent.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from cotask.agent.agents import build_agents
from cotask.agent.model import load_models
from cotask.agent.scheduler import TaskScheduler
from cotask.common import (
    AnsiColors,
    colored_print,
)
from cotask.config import settings
from cotask.core.schema import (
    Phase,
    Plan,
    Task,
    TaskStatus,
)
from cotask.tools import ToolContext
from cotask.tools.command import (
    approve_all,
    ask_confirmation,
)

logger = logging.getLogger(__name__)

PLAN_REQUIRED_OUTPUT = "A short summary of the executed plan and its results."


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Keep the SDK transport chatter out of the agent log
    for noisy in ("httpx", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def create_scheduler(working_dir: Path, auto_approve: bool, max_turns: int) -> TaskScheduler:
    """Wire state, tools, models and agents into a ready scheduler."""
    scheduler = TaskScheduler(max_turns=max_turns)
    ctx = ToolContext(
        working_dir=working_dir,
        confirm=approve_all if auto_approve else ask_confirmation,
        run_plan=scheduler.run_plan_text,
        command_timeout=settings.COMMAND_TIMEOUT,
    )
    scheduler.register_agents(build_agents(load_models(), ctx))
    return scheduler


async def run(request: str, scheduler: TaskScheduler) -> bool:
    """Hand *request* to the planning agent; return whether it finished."""
    plan = Plan(
        tasks=[Task(phase=Phase.PLAN.value, task=request, required_output=PLAN_REQUIRED_OUTPUT)]
    )
    report = await scheduler.run_plan(plan)
    outcome = report.outcomes[0]
    if outcome.status is TaskStatus.COMPLETED:
        colored_print(outcome.response or "", AnsiColors.YELLOW)
        return True
    colored_print(f"⚠️ Planning failed: {outcome.error}", AnsiColors.RED)
    return False


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the CoTask application.

    Reads the request from the command line (or stdin), sets up logging and runs the pipeline in the
    working directory.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the CoTask agent team on a software task")
    parser.add_argument("request", nargs="?", help="The task to solve (default: read from stdin)")
    parser.add_argument(
        "--working-dir",
        default=settings.WORKING_DIR,
        help="Directory the agents work in (default from env: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--max-turns",
        type=int,
        default=settings.MAX_TURNS,
        help="Model calls allowed per agent conversation (default: %(default)s)",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        default=settings.AUTO_APPROVE_COMMANDS,
        help="Run commands without asking for confirmation",
    )
    args = parser.parse_args(argv)

    # Override settings with command-line arguments
    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    working_dir = Path(args.working_dir).resolve()
    if not working_dir.is_dir():
        logger.error("Working directory does not exist: %s", working_dir)
        sys.exit(1)

    request = args.request or sys.stdin.read().strip()
    if not request:
        parser.error("No request given.")

    logger.info("Starting CoTask in %s", working_dir)
    logger.debug("Settings: %s", settings.model_dump(exclude={"OPENAI_API_KEY", "ANTHROPIC_API_KEY"}))

    scheduler = create_scheduler(working_dir, args.yes, args.max_turns)
    ok = asyncio.run(run(request, scheduler))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
