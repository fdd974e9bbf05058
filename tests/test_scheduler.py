"""Tests for the task scheduler, the agent roster and the prompt templates."""

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import List

import pytest

from cotask.agent.agents import (
    PipelineState,
    build_agents,
    code_template,
    make_document_template,
    review_template,
    store_design_knowledge,
    store_research_note,
    verification_template,
)
from cotask.agent.model import (
    AIModel,
    ModelSet,
)
from cotask.agent.scheduler import TaskScheduler
from cotask.core.schema import (
    Phase,
    Plan,
    Task,
    TaskStatus,
    ToolCall,
)
from cotask.tools import ToolContext
from fakes import (
    ScriptedProvider,
    make_agent,
    recording_tool,
    reply,
)


def _task(phase: str, text: str) -> Task:
    return Task(phase=phase, task=text, required_output="summary")


@pytest.mark.asyncio
async def test_failed_task_does_not_stop_the_plan(caplog: pytest.LogCaptureFixture) -> None:
    code = ScriptedProvider([reply("<response>c1</response>"), reply("<response>c3</response>")])
    design = ScriptedProvider([RuntimeError("boom")])
    scheduler = TaskScheduler()
    scheduler.register_agents(
        {
            "code": make_agent(code, phase=Phase.CODE),
            "design": make_agent(design, phase=Phase.DESIGN),
        }
    )
    plan = Plan(tasks=[_task("code", "one"), _task("design", "two"), _task("code", "three")])

    report = await scheduler.run_plan(plan)

    assert [o.status for o in report.outcomes] == [
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.COMPLETED,
    ]
    assert report.outcomes[1].error == "boom"
    assert scheduler.state.code_changes == ("c1", "c3")
    assert not report.all_completed
    failures = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert [r.getMessage() for r in failures] == ["Task failed [DESIGN]: two"]
    assert failures[0].exc_info is not None


@pytest.mark.asyncio
async def test_tasks_run_in_plan_order() -> None:
    seen: List[str] = []

    def prompt(task: Task, state: PipelineState) -> str:
        seen.append(task.task)
        return task.task

    provider = ScriptedProvider([reply("<response>ok</response>")] * 3)
    scheduler = TaskScheduler()
    scheduler.register_agents({"code": make_agent(provider, to_user_prompt=prompt)})

    await scheduler.run_plan(Plan(tasks=[_task("code", name) for name in ("a", "b", "c")]))

    assert seen == ["a", "b", "c"]
    assert [req["thread"][0].content for req in provider.requests] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_unknown_phase_is_skipped() -> None:
    provider = ScriptedProvider([reply("<response>done</response>")])
    scheduler = TaskScheduler()
    scheduler.register_agents({"code": make_agent(provider)})

    report = await scheduler.run_plan(Plan(tasks=[_task("deploy", "ship it"), _task("CODE", "x")]))

    assert [o.status for o in report.outcomes] == [TaskStatus.SKIPPED, TaskStatus.COMPLETED]
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_run_plan_text_summarizes_outcomes() -> None:
    provider = ScriptedProvider([reply("<response>done</response>")])
    scheduler = TaskScheduler()
    scheduler.register_agents({"code": make_agent(provider)})

    text = await scheduler.run_plan_text(Plan(tasks=[_task("code", "build"), _task("ops", "run")]))

    assert text.splitlines() == [
        "Not all tasks completed.",
        "- [CODE] build: completed",
        "- [OPS] run: skipped (unknown phase)",
    ]


def test_register_agents_only_once() -> None:
    scheduler = TaskScheduler()
    scheduler.register_agents({"code": make_agent(ScriptedProvider([]))})

    with pytest.raises(RuntimeError, match="already registered"):
        scheduler.register_agents({})


def test_handlers_update_state() -> None:
    state = PipelineState()

    store_research_note(state, "first")
    store_research_note(state, "second")
    store_design_knowledge(state, "layers")

    assert state.research_note == "second"
    assert state.design_knowledge == ("layers",)


def test_code_template_includes_research_note() -> None:
    state = PipelineState()
    task = _task("code", "Add login")

    assert "Research Notes" not in code_template(task, state)

    state.replace_research_note("Use OAuth")
    prompt = code_template(task, state)
    assert prompt.startswith("## Research Notes:\nUse OAuth")
    assert "## Your Task:\nAdd login" in prompt


def test_review_and_verification_templates_include_changes() -> None:
    state = PipelineState()
    state.add_code_change("added login form")
    state.add_design_knowledge("MVC layout")
    task = _task("test", "Verify login")

    assert "- added login form" in review_template(task, state)
    prompt = verification_template(task, state)
    assert "- added login form" in prompt
    assert "- MVC layout" in prompt
    assert "## Required output (for documentation reasons): summary" in prompt


def test_document_template_includes_tree(tmp_path: Path) -> None:
    (tmp_path / "README.md").write_text("hi")
    template = make_document_template(ToolContext(working_dir=tmp_path))

    prompt = template(_task("document", "Write docs"), PipelineState())

    assert "README.md" in prompt
    assert "- (none yet)" in prompt


def test_build_agents_covers_every_phase(tmp_path: Path) -> None:
    model = AIModel(ScriptedProvider([]), "m", 1000, max_retries=0)
    agents = build_agents(ModelSet(fast=model, quality=model, online=model), ToolContext(working_dir=tmp_path))

    assert set(agents) == {phase.value for phase in Phase}
    assert "create_task_plan" in agents["plan"].tools
    assert len(agents["research"].tools) == 0
    assert "delete_file" not in agents["design"].tools
    assert "execute_command" in agents["code"].tools


@pytest.mark.asyncio
async def test_run_hands_request_to_planner() -> None:
    from cotask.main import run  # pylint: disable=import-outside-toplevel

    provider = ScriptedProvider([reply("<response>plan done</response>"), RuntimeError("offline")])
    scheduler = TaskScheduler()
    scheduler.register_agents({"plan": make_agent(provider, phase=Phase.PLAN)})

    assert await run("Build a CLI", scheduler) is True
    assert provider.requests[0]["thread"][0].content == "Build a CLI"
    assert await run("Again", scheduler) is False


@pytest.mark.asyncio
async def test_all_completed_report_header() -> None:
    provider = ScriptedProvider([reply("<response>done</response>")])
    scheduler = TaskScheduler()
    scheduler.register_agents({"code": make_agent(provider)})

    text = await scheduler.run_plan_text(Plan(tasks=[_task("code", "build")]))

    assert text.splitlines() == ["All tasks completed.", "- [CODE] build: completed"]


@pytest.mark.asyncio
async def test_cancelled_plan_starts_no_tasks() -> None:
    cancel = asyncio.Event()
    cancel.set()
    provider = ScriptedProvider([])
    scheduler = TaskScheduler(cancel=cancel)
    scheduler.register_agents({"code": make_agent(provider)})

    report = await scheduler.run_plan(Plan(tasks=[_task("code", name) for name in ("a", "b", "c")]))

    assert [(o.status, o.error) for o in report.outcomes] == [(TaskStatus.SKIPPED, "cancelled")] * 3
    assert provider.requests == []


@pytest.mark.asyncio
async def test_cancel_during_task_skips_the_rest(caplog: pytest.LogCaptureFixture) -> None:
    cancel = asyncio.Event()

    async def stop(params) -> str:
        cancel.set()
        return "stopping"

    tool = dataclasses.replace(recording_tool("stop", []), execute=stop)
    provider = ScriptedProvider([reply(tool_calls=[ToolCall(id="c1", name="stop", arguments="{}")])])
    scheduler = TaskScheduler(cancel=cancel)
    scheduler.register_agents({"code": make_agent(provider, tools=[tool])})

    report = await scheduler.run_plan(Plan(tasks=[_task("code", "one"), _task("code", "two")]))

    assert [o.status for o in report.outcomes] == [TaskStatus.FAILED, TaskStatus.SKIPPED]
    assert report.outcomes[0].error == "Conversation cancelled"
    assert len(provider.requests) == 1
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
