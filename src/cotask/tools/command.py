"""Shell command execution, guarded by an interactive confirmation."""

import asyncio
import logging
import platform
from typing import (
    List,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    Field,
)

from cotask.common import (
    AnsiColors,
    colored_print,
)
from cotask.tools import (
    ToolContext,
    ToolDefinition,
    register_tool,
)

logger = logging.getLogger(__name__)


async def ask_confirmation(command: str) -> bool:
    """Ask on the terminal whether *command* may run.  Empty input means yes."""
    colored_print(f"[ACTION] CoTask wants to execute the command: '{command}'", AnsiColors.YELLOW)
    try:
        answer = await asyncio.to_thread(input, "[ACTION] Confirm? ([y] / n): ")
    except EOFError:
        return False
    answer = answer.strip().lower()
    return not answer or answer.startswith("y")


async def approve_all(command: str) -> bool:
    logger.info("Auto-approving command '%s'", command)
    return True


def _shell_argv(command: str) -> List[str]:
    if platform.system() == "Windows":
        return ["cmd.exe", "/c", command]
    return ["bash", "-c", command]


async def run_command(command: str, cwd: str, timeout: float) -> Tuple[Optional[int], str, str]:
    """
    Run *command* through the platform shell.

    Returns ``(exit_code, stdout, stderr)``; the exit code is *None* when the command timed out and
    was killed.
    """
    proc = await asyncio.create_subprocess_exec(
        *_shell_argv(command),
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        stdout, stderr = await proc.communicate()
        return None, stdout.decode(errors="replace"), stderr.decode(errors="replace")
    return proc.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")


class ExecuteCommandParams(BaseModel):
    command: str = Field(
        ...,
        description="The command to execute (e.g. bash command). Changing the current working "
        "directory is not supported.",
        examples=["pip install -e .", "ls -la ./docs"],
    )
    timeout: Optional[int] = Field(
        None,
        ge=1,
        description="Optional: the maximum time in seconds to wait for the command to finish. "
        "Only use this when you think the default is not enough.",
    )


@register_tool("execute_command")
def execute_command(ctx: ToolContext) -> ToolDefinition:
    async def execute(params: ExecuteCommandParams) -> str:
        if not await ctx.confirm(params.command):
            logger.info("Command execution denied: '%s'", params.command)
            return "User denied this command execution."

        timeout = params.timeout or ctx.command_timeout
        logger.info("Executing command '%s' (timeout %ss)", params.command, timeout)
        try:
            exit_code, stdout, stderr = await run_command(
                params.command, str(ctx.working_dir), timeout
            )
        except OSError as exc:
            return f"Command could not be started: {exc}"

        if exit_code is None:
            return "\n\n".join(
                [f"Command timed out after {timeout} seconds and was killed.", stderr, stdout]
            )
        parts = [stderr, stdout, f"Exit code: {exit_code}"]
        if exit_code != 0:
            parts.insert(0, "Command executed with Error:")
        return "\n\n".join(parts)

    return ToolDefinition(
        id="execute_command",
        name="Execute a Command",
        description=f"Execute a command on the command line interface (for {platform.system()}, "
        f"{platform.machine()}). E.g. for installing packages, listing files, etc. Will return "
        "stdout, stderr, and exit code.",
        params_model=ExecuteCommandParams,
        execute=execute,
    )
