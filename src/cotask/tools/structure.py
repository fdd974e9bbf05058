"""Directory tree listing."""

import asyncio
from pathlib import Path
from typing import List

from pydantic import (
    BaseModel,
    Field,
)

from cotask.tools import (
    ToolContext,
    ToolDefinition,
    register_tool,
)

IGNORED_NAMES = frozenset(
    {
        ".git",
        ".idea",
        ".m2",
        "__pycache__",
        "node_modules",
        ".venv",
        ".gitignore",
        ".gitkeep",
        ".DS_Store",
        ".vscode",
        ".next",
        ".pytest_cache",
        ".mypy_cache",
        "dist",
        "build",
        "out",
        "venv",
        "env",
        "logs",
        "data",
        "Thumbs.db",
        "desktop.ini",
        ".env.local",
    }
)


def _tree_lines(directory: Path, depth: int, prefix: str) -> List[str]:
    if depth <= 0:
        return []
    entries = sorted(
        (p for p in directory.iterdir() if p.name not in IGNORED_NAMES),
        key=lambda p: (not p.is_dir(), p.name.lower()),
    )
    lines: List[str] = []
    for idx, entry in enumerate(entries):
        last = idx == len(entries) - 1
        branch = "└── " if last else "├── "
        if entry.is_dir():
            lines.append(f"{prefix}{branch}{entry.name}/")
            lines.extend(_tree_lines(entry, depth - 1, prefix + ("    " if last else "│   ")))
        else:
            lines.append(f"{prefix}{branch}{entry.name}")
    return lines


def render_tree(root: Path, depth: int = 3) -> str:
    """Render the directory tree below *root*, *depth* levels deep."""
    if not root.is_dir():
        return f"Directory does not exist: {root}"
    lines = _tree_lines(root, depth, "")
    if not lines:
        return "This directory is empty."
    return "\n".join([".", *lines])


class DirectoryStructureParams(BaseModel):
    path: str = Field(".", description="The path to the directory to scan.", examples=["./src"])
    depth: int = Field(
        3, ge=1, le=5, description="The depth of the directory structure to scan (default is 3)."
    )


@register_tool("directory_structure")
def directory_structure(ctx: ToolContext) -> ToolDefinition:
    async def execute(params: DirectoryStructureParams) -> str:
        tree = await asyncio.to_thread(render_tree, ctx.working_dir / params.path, params.depth)
        return f"Project Structure (Tree):\n{tree}"

    return ToolDefinition(
        id="directory_structure",
        name="Get Directory Structure",
        description="Get the complete directory structure (recursive tree).",
        params_model=DirectoryStructureParams,
        execute=execute,
    )
