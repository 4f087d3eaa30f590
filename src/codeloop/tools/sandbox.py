"""
Sandboxed executors for the built-in tools.

Every executor takes a validated argument model plus the :class:`Workspace` it is confined to and
returns bounded text.  Failures never propagate: they come back as ``Error: <reason>`` so the model
always gets a result it can react to.

The checks here (denylist substrings, path confinement) are a tripwire for honest mistakes, not a
security boundary.
"""

import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import Field

from codeloop.config import settings
from codeloop.tools import (
    ToolArgs,
    register_tool,
)

logger = logging.getLogger(__name__)

DANGEROUS_PATTERNS = ("rm -rf /", "sudo", "shutdown", "reboot", "> /dev/")
"""Substrings that make ``bash`` refuse a command outright."""

NO_OUTPUT = "(no output)"


class PathEscapeError(ValueError):
    """Raised when a tool path resolves outside the workspace root."""


@dataclass(frozen=True)
class Workspace:
    """The directory tools are confined to, plus the execution limits they share."""

    root: Path
    command_timeout: float = 120.0
    max_output_chars: int = 50_000

    def __post_init__(self) -> None:
        # Resolve once so symlinked roots compare correctly against resolved tool paths.
        object.__setattr__(self, "root", Path(self.root).resolve())

    @classmethod
    def from_settings(cls, workdir: Optional[str] = None) -> "Workspace":
        """Build a workspace from ``settings``; *workdir* overrides ``settings.WORKDIR``."""
        return cls(
            root=Path(workdir or settings.WORKDIR or os.getcwd()),
            command_timeout=settings.COMMAND_TIMEOUT,
            max_output_chars=settings.MAX_OUTPUT_CHARS,
        )

    def safe_path(self, path: str) -> Path:
        """
        Resolve *path* against the workspace root.

        Raises
        ------
        PathEscapeError
            If the resolved path does not lie under the root.
        """
        resolved = (self.root / path).resolve()
        if not resolved.is_relative_to(self.root):
            raise PathEscapeError(f"Path escapes workspace: {path}")
        return resolved

    def truncate(self, text: str) -> str:
        return text[: self.max_output_chars]


def is_dangerous(command: str) -> bool:
    return any(pattern in command for pattern in DANGEROUS_PATTERNS)


def _format_seconds(seconds: float) -> str:
    return f"{seconds:g}s"


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------
class CommandArgs(ToolArgs):
    command: str = Field(..., description="Shell command to run in the workspace")


class ReadFileArgs(ToolArgs):
    path: str = Field(..., description="File path relative to the workspace")
    limit: Optional[int] = Field(None, description="Maximum number of lines to return")


class WriteFileArgs(ToolArgs):
    path: str = Field(..., description="File path relative to the workspace")
    content: str = Field(..., description="Full new file content")


class EditFileArgs(ToolArgs):
    path: str = Field(..., description="File path relative to the workspace")
    old_text: str = Field(..., description="Exact text to replace (first occurrence)")
    new_text: str = Field(..., description="Replacement text")


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------
@register_tool("bash")
def run_command(args: CommandArgs, workspace: Workspace) -> str:
    """Run a shell command.

    stdout and stderr are captured separately and concatenated.  The command runs in its own
    process group so that a timeout or an interrupt kills everything it started.
    """
    command = args.command
    if is_dangerous(command):
        logger.warning("Blocked dangerous command: %s", command)
        return "Error: Dangerous command blocked"

    try:
        proc = subprocess.Popen(  # pylint: disable=consider-using-with
            command,
            shell=True,
            cwd=workspace.root,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        logger.error("Failed to spawn command %r: %s", command, exc)
        return f"Error: {exc}"

    try:
        stdout, stderr = proc.communicate(timeout=workspace.command_timeout)
    except subprocess.TimeoutExpired:
        _kill_process_group(proc)
        proc.communicate()
        logger.warning("Command timed out after %ss: %s", workspace.command_timeout, command)
        return f"Error: Timeout ({_format_seconds(workspace.command_timeout)})"
    except BaseException:
        # Own session, so Ctrl+C never reaches the command itself
        _kill_process_group(proc)
        proc.wait()
        logger.warning("Command interrupted, process group killed: %s", command)
        raise

    output = (
        stdout.decode("utf-8", errors="replace") + stderr.decode("utf-8", errors="replace")
    ).strip()
    logger.debug("Command %r exited with %s", command, proc.returncode)
    return workspace.truncate(output) if output else NO_OUTPUT


@register_tool("read_file")
def read_file(args: ReadFileArgs, workspace: Workspace) -> str:
    """Read file contents.

    A non-negative ``limit`` keeps that many lines and appends a marker counting the rest.
    """
    try:
        text = workspace.safe_path(args.path).read_bytes().decode("utf-8")
    except (OSError, ValueError) as exc:
        return f"Error: {exc}"

    lines = text.split("\n")
    limit = args.limit
    if limit is not None and 0 <= limit < len(lines):
        omitted = len(lines) - limit
        lines = lines[:limit] + [f"... ({omitted} more lines)"]
    return workspace.truncate("\n".join(lines))


@register_tool("write_file")
def write_file(args: WriteFileArgs, workspace: Workspace) -> str:
    """Write content to file."""
    data = args.content.encode("utf-8")
    try:
        target = workspace.safe_path(args.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except (OSError, ValueError) as exc:
        return f"Error: {exc}"
    return f"Wrote {len(data)} bytes to {args.path}"


@register_tool("edit_file")
def patch_file(args: EditFileArgs, workspace: Workspace) -> str:
    """Replace exact text in file.

    Only the first occurrence of ``old_text`` is replaced; call again for further occurrences.
    """
    if not args.old_text:
        return "Error: old_text must not be empty"
    try:
        target = workspace.safe_path(args.path)
        content = target.read_bytes().decode("utf-8")
        if args.old_text not in content:
            return f"Error: Text not found in {args.path}"
        target.write_bytes(content.replace(args.old_text, args.new_text, 1).encode("utf-8"))
    except (OSError, ValueError) as exc:
        return f"Error: {exc}"
    return f"Edited {args.path}"
