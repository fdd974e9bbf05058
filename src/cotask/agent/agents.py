"""
The phase agents and the state they share.

Each phase of the pipeline gets exactly one :class:`Agent`: a system prompt, a toolset, a model, a
prompt template that turns a :class:`~cotask.core.schema.Task` into the opening user message, and a
response handler.  Templates read from and handlers write to the run's :class:`PipelineState`,
which the scheduler owns and passes in explicitly.
"""

import logging
from dataclasses import dataclass
from typing import (
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

from cotask.agent.model import (
    AIModel,
    ModelSet,
)
from cotask.core.schema import (
    Phase,
    Task,
)
from cotask.tools import (
    ToolContext,
    ToolRegistry,
    build_toolset,
)
from cotask.tools.structure import render_tree

logger = logging.getLogger(__name__)


class PipelineState:
    """Cross-phase accumulators for one plan execution."""

    def __init__(self) -> None:
        self._design_knowledge: List[str] = []
        self._code_changes: List[str] = []
        self._research_note: Optional[str] = None

    @property
    def design_knowledge(self) -> Tuple[str, ...]:
        return tuple(self._design_knowledge)

    @property
    def code_changes(self) -> Tuple[str, ...]:
        return tuple(self._code_changes)

    @property
    def research_note(self) -> Optional[str]:
        return self._research_note

    def add_design_knowledge(self, entry: str) -> None:
        self._design_knowledge.append(entry)

    def add_code_change(self, entry: str) -> None:
        self._code_changes.append(entry)

    def replace_research_note(self, note: str) -> None:
        self._research_note = note


PromptTemplate = Callable[[Task, PipelineState], str]
ResponseHandler = Callable[[PipelineState, str], None]


@dataclass(frozen=True)
class Agent:
    """A phase-scoped bundle of prompt, tools, model, template and handler."""

    phase: Phase
    system_prompt: str
    tools: ToolRegistry
    model: AIModel
    to_user_prompt: PromptTemplate
    on_response: ResponseHandler


# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------
PLAN_PROMPT = (
    "You are an expert project manager for software development. You are tasked with finding the "
    "exact requirements for solving the given task. Please create a step-by-step plan for the "
    "development team and execute it with the task plan tool."
)
RESEARCH_PROMPT = (
    "You are a researcher specialized in software engineering. You are tasked with finding the best "
    "technology solution for a given task. Please first research the best solution and weigh its "
    "pros and cons. Second, in your final response, provide a summary of the solution you found "
    "including code examples and step-by-step instructions for the developers."
)
DESIGN_PROMPT = (
    "You are a highly skilled software architect. You've got information about your task and "
    "documents from the coworkers in your project (e.g. details about the project, research and "
    "more). Your goal is to design the software architecture for a project. Please provide a "
    "detailed design document including the architecture, data flow, and description of components. "
    "The design document will be used by the development team to implement the solution. Use the "
    "tools to save the design document as Markdown. Only output the design document in the final "
    "response."
)
CODE_PROMPT = (
    "You are a highly experienced software developer and tasked with implementing software for a "
    "project. You've got a specific task and information about how to implement it. Please use your "
    "tools to implement the solution. Just provide a summary of what changes you made in the final "
    "response."
)
REVIEW_PROMPT = (
    "You are a highly experienced senior software engineer and tasked with reviewing the code "
    "changes made by a junior software developer. Please first search for code which does not meet "
    "the code quality standards or could introduce potential bugs. Second, adjust the code according "
    "to the issues you've found. Please provide a summary of what adjustments you made in the final "
    "response."
)
TEST_PROMPT = (
    "You are a software tester and tasked with testing the software for a project. You've got "
    "information about the project and the test cases. Please use your tools to write tests and test "
    "the software. Provide a summary of the changes (to tests) you've made and the final test results "
    "in the response."
)
DOCUMENT_PROMPT = (
    "You are a technical writer and tasked with writing documentation for a project. You've got "
    "information about the project, what changes have been made and the document structure. Please "
    "use your tools to write the documentation. Just provide the word 'FINISHED' in the final "
    "response."
)

_WORKSPACE_TOOLS = (
    "execute_command",
    "directory_structure",
    "open_file",
    "modify_file",
    "move_file",
    "delete_file",
)


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------
def _bullets(entries: Sequence[str]) -> str:
    if not entries:
        return "- (none yet)"
    return "- " + "\n- ".join(entries)


def _task_section(task: Task, output_label: str) -> str:
    return f"## Your Task:\n{task.task}\n\n## {output_label}: {task.required_output}"


def plan_template(task: Task, state: PipelineState) -> str:
    return _task_section(task, "Required Output")


def research_template(task: Task, state: PipelineState) -> str:
    return _task_section(task, "Required Output for developers")


def design_template(task: Task, state: PipelineState) -> str:
    return _task_section(task, "Required Output for project documentation")


def code_template(task: Task, state: PipelineState) -> str:
    prompt = _task_section(task, "Required output (for documentation reasons)")
    if state.research_note:
        prompt = f"## Research Notes:\n{state.research_note}\n\n{prompt}"
    return prompt


def review_template(task: Task, state: PipelineState) -> str:
    return (
        f"## Code Changes (made by developers):\n{_bullets(state.code_changes)}\n\n"
        + _task_section(task, "Required output (for documentation reasons)")
    )


def verification_template(task: Task, state: PipelineState) -> str:
    return (
        f"## Code Changes (made by developers):\n{_bullets(state.code_changes)}\n\n"
        f"## Project Information:\n{_bullets(state.design_knowledge)}\n\n"
        + _task_section(task, "Required output (for documentation reasons)")
    )


def make_document_template(ctx: ToolContext) -> PromptTemplate:
    def document_template(task: Task, state: PipelineState) -> str:
        return (
            f"## Project Information:\n{_bullets(state.design_knowledge)}\n\n"
            f"## Code Changes (made by developers):\n{_bullets(state.code_changes)}\n\n"
            f"## Project Structure (Tree):\n{render_tree(ctx.working_dir, depth=5)}\n\n"
            f"## Your Task:\n{task.task}"
        )

    return document_template


# ---------------------------------------------------------------------------
# Response handlers
# ---------------------------------------------------------------------------
def log_plan_response(state: PipelineState, response: str) -> None:
    logger.info("[PLANNER] %s", response)


def store_research_note(state: PipelineState, response: str) -> None:
    state.replace_research_note(response)


def store_design_knowledge(state: PipelineState, response: str) -> None:
    state.add_design_knowledge(response)


def store_code_change(state: PipelineState, response: str) -> None:
    state.add_code_change(response)


def ignore_response(state: PipelineState, response: str) -> None:
    return None


def build_agents(models: ModelSet, ctx: ToolContext) -> Dict[str, Agent]:
    """Create the agent roster for one run, keyed by phase tag."""
    roster = [
        Agent(
            phase=Phase.PLAN,
            system_prompt=PLAN_PROMPT,
            tools=build_toolset(["directory_structure", "create_task_plan"], ctx),
            model=models.fast,
            to_user_prompt=plan_template,
            on_response=log_plan_response,
        ),
        Agent(
            phase=Phase.RESEARCH,
            system_prompt=RESEARCH_PROMPT,
            tools=build_toolset([], ctx),
            model=models.online,
            to_user_prompt=research_template,
            on_response=store_research_note,
        ),
        Agent(
            phase=Phase.DESIGN,
            system_prompt=DESIGN_PROMPT,
            tools=build_toolset(
                ["directory_structure", "open_file", "modify_file", "move_file"], ctx
            ),
            model=models.quality,
            to_user_prompt=design_template,
            on_response=store_design_knowledge,
        ),
        Agent(
            phase=Phase.CODE,
            system_prompt=CODE_PROMPT,
            tools=build_toolset(_WORKSPACE_TOOLS, ctx),
            model=models.fast,
            to_user_prompt=code_template,
            on_response=store_code_change,
        ),
        Agent(
            phase=Phase.REVIEW,
            system_prompt=REVIEW_PROMPT,
            tools=build_toolset(_WORKSPACE_TOOLS, ctx),
            model=models.fast,
            to_user_prompt=review_template,
            on_response=store_code_change,
        ),
        Agent(
            phase=Phase.TEST,
            system_prompt=TEST_PROMPT,
            tools=build_toolset(_WORKSPACE_TOOLS, ctx),
            model=models.fast,
            to_user_prompt=verification_template,
            on_response=store_code_change,
        ),
        Agent(
            phase=Phase.DOCUMENT,
            system_prompt=DOCUMENT_PROMPT,
            tools=build_toolset(_WORKSPACE_TOOLS, ctx),
            model=models.fast,
            to_user_prompt=make_document_template(ctx),
            on_response=ignore_response,
        ),
    ]
    return {agent.phase.value: agent for agent in roster}
