"""File tools: open, modify (diff or overwrite), move and delete files below the working dir."""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import (
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    Field,
)

from cotask.core.diff import (
    DiffError,
    apply_diff,
)
from cotask.tools import (
    ToolContext,
    ToolDefinition,
    register_tool,
)

logger = logging.getLogger(__name__)

_PATH_DESCRIPTION = "The relative path to the file from the current working directory."


def number_lines(content: str, start: int = 1) -> str:
    """Prefix every line of *content* with its line number (``N | line``)."""
    return "\n".join(f"{idx} | {line}" for idx, line in enumerate(content.split("\n"), start=start))


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


# ---------------------------------------------------------------------------
# open_file
# ---------------------------------------------------------------------------
class OpenFileParams(BaseModel):
    file_path: str = Field(..., description=_PATH_DESCRIPTION, examples=["./src/index.js"])


@register_tool("open_file")
def open_file(ctx: ToolContext) -> ToolDefinition:
    async def execute(params: OpenFileParams) -> str:
        path = ctx.working_dir / params.file_path
        if not path.is_file():
            return f"File not found: {params.file_path}"

        logger.info("Opened file '%s'", params.file_path)
        try:
            content = await asyncio.to_thread(_read_text, path)
        except (OSError, UnicodeDecodeError) as exc:
            return f"Could not open file {params.file_path}: {exc}"
        return f"// {params.file_path}\n\n{number_lines(content)}"

    return ToolDefinition(
        id="open_file",
        name="Open a File",
        description="Get the content of a file by provided file path.",
        params_model=OpenFileParams,
        execute=execute,
    )


# ---------------------------------------------------------------------------
# modify_file
# ---------------------------------------------------------------------------
class StructuredDiff(BaseModel):
    """A diff given as its hunk header plus the change lines."""

    cursor: str = Field(..., description="Hunk header, e.g. '@@ -1,4 +1,4 @@'")
    content: str = Field(..., description="Change lines, each prefixed with '+', '-' or ' '")

    def to_text(self) -> str:
        return f"{self.cursor}\n{self.content}"


class ModifyFileParams(BaseModel):
    file_path: str = Field(..., description=_PATH_DESCRIPTION, examples=["./src/index.js"])
    mode: Literal["patch", "overwrite"] = Field(
        "patch",
        description="'patch' applies the diffs in order, 'overwrite' replaces the whole file "
        "with 'content'.",
    )
    diffs: List[Union[str, StructuredDiff]] = Field(
        default_factory=list,
        description="The changes in a format similar to a git diff block. Start with the line "
        "cursor (e.g. '@@ -1,4 +1,4 @@'). Prefix with '+' to add a line, '-' to remove a line, "
        "and ' ' to keep a line. Header counts must match the lines given.",
    )
    content: Optional[str] = Field(None, description="New file content for 'overwrite' mode.")


@register_tool("modify_file")
def modify_file(ctx: ToolContext) -> ToolDefinition:
    async def execute(params: ModifyFileParams) -> str:
        path = ctx.working_dir / params.file_path

        if params.mode == "overwrite":
            if params.content is None:
                return "Overwrite mode requires 'content'. Nothing was written."
            try:
                await asyncio.to_thread(_write_text, path, params.content)
            except OSError as exc:
                logger.error("Error writing '%s': %s", params.file_path, exc)
                return f"Error writing file {params.file_path}: {exc}"
            logger.info("Overwrote file '%s'", params.file_path)
            return f"// Overwritten {params.file_path}\n\n{number_lines(params.content)}"

        if not params.diffs:
            return "No diffs given. Nothing was changed."

        try:
            original = await asyncio.to_thread(_read_text, path) if path.is_file() else ""
        except (OSError, UnicodeDecodeError) as exc:
            return f"Could not open file {params.file_path}: {exc}"
        updated = original
        for idx, diff in enumerate(params.diffs, start=1):
            text = diff.to_text() if isinstance(diff, StructuredDiff) else diff
            try:
                updated = apply_diff(updated, text)
            except DiffError as exc:
                logger.info("Rejected diff %d for '%s': %s", idx, params.file_path, exc)
                return (
                    f"Could not apply diff {idx} of {len(params.diffs)} to {params.file_path}: "
                    f"{exc}. The file was not changed."
                )

        try:
            await asyncio.to_thread(_write_text, path, updated)
        except OSError as exc:
            logger.error("Error writing '%s': %s", params.file_path, exc)
            return f"Error writing file {params.file_path}: {exc}"
        logger.info("Updated file '%s' with %d diff(s)", params.file_path, len(params.diffs))
        return f"// Updated {params.file_path}\n\n{number_lines(updated)}"

    return ToolDefinition(
        id="modify_file",
        name="Modify a File",
        description="Modify the file by applying diffs or overwriting everything. If the file "
        "does not exist, it will be created automatically.",
        params_model=ModifyFileParams,
        execute=execute,
    )


# ---------------------------------------------------------------------------
# move_file
# ---------------------------------------------------------------------------
class MoveFileParams(BaseModel):
    current_path: str = Field(
        ...,
        description="The current relative path to the file (from the current working directory).",
        examples=["./src/index.js"],
    )
    new_path: str = Field(
        ...,
        description="The new relative path where the file should be moved to.",
        examples=["./src/backend/index.js"],
    )


def _move(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source), str(target))


@register_tool("move_file")
def move_file(ctx: ToolContext) -> ToolDefinition:
    async def execute(params: MoveFileParams) -> str:
        source = ctx.working_dir / params.current_path
        if not source.exists():
            return f"File {params.current_path} (current_path) does not exist. Can't move."

        target = ctx.working_dir / params.new_path
        if target.exists():
            return f"File {params.new_path} (new_path) already exists. Can't overwrite existing file."

        try:
            await asyncio.to_thread(_move, source, target)
        except OSError as exc:
            logger.error("Error moving '%s': %s", params.current_path, exc)
            return f"Error moving file {params.current_path}: {exc}"

        logger.info("Moved '%s' to '%s'", params.current_path, params.new_path)
        return f"Moved file from '{params.current_path}' to '{params.new_path}'"

    return ToolDefinition(
        id="move_file",
        name="Move a File/Directory",
        description="Moves a file or directory by its relative path to a new (relative) path.",
        params_model=MoveFileParams,
        execute=execute,
    )


# ---------------------------------------------------------------------------
# delete_file
# ---------------------------------------------------------------------------
class DeleteFileParams(BaseModel):
    file_path: str = Field(..., description=_PATH_DESCRIPTION, examples=["./src/index.js"])


@register_tool("delete_file")
def delete_file(ctx: ToolContext) -> ToolDefinition:
    async def execute(params: DeleteFileParams) -> str:
        path = ctx.working_dir / params.file_path
        if not path.is_file():
            return f"File {params.file_path} does not exist. Nothing to delete."

        try:
            await asyncio.to_thread(path.unlink)
        except OSError as exc:
            logger.error("Error deleting '%s': %s", params.file_path, exc)
            return f"Error deleting file {params.file_path}: {exc}"

        logger.info("Deleted file '%s'", params.file_path)
        return f"Deleted file {params.file_path}"

    return ToolDefinition(
        id="delete_file",
        name="Delete a File",
        description="Deletes a file by its relative path.",
        params_model=DeleteFileParams,
        execute=execute,
    )
