"""Errors raised by the process runner."""

from __future__ import annotations

from pathlib import Path

from bundlr.core.errors import BundlrError
from bundlr.core.process.models import ProcessResult


def excerpt(text: str, limit: int) -> str:
    """Return at most ``limit`` characters of text, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + f"... [{len(text) - limit} more chars]"


class ProcessError(BundlrError):
    """Base class for process execution failures."""


class ExecutableNotFoundError(ProcessError):
    """The executable does not resolve to an existing file."""

    def __init__(self, executable: str | Path) -> None:
        self.executable = str(executable)
        super().__init__(f"Executable not found: {self.executable}")


class WorkingDirectoryNotFoundError(ProcessError):
    """The requested working directory does not exist."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        super().__init__(f"Working directory not found: {directory}")


class ProcessStartError(ProcessError):
    """The operating system refused to start the process."""

    def __init__(self, tool_name: str, command_line: str, cause: OSError) -> None:
        self.tool_name = tool_name
        self.command_line = command_line
        self.cause = cause
        super().__init__(f"Failed to start {tool_name}: {cause} (command: {command_line})")


class ProcessTimeoutError(ProcessError):
    """The process exceeded its timeout and its process tree was killed.

    ``result`` holds whatever output was captured before the kill; it is
    necessarily incomplete.
    """

    def __init__(
        self, tool_name: str, timeout_seconds: float, elapsed_seconds: float, result: ProcessResult
    ) -> None:
        self.tool_name = tool_name
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        self.result = result
        self.pid = result.pid
        super().__init__(
            f"{tool_name} timed out after {timeout_seconds:g}s "
            f"(elapsed {elapsed_seconds:.1f}s); process tree killed"
        )


class ProcessFailedError(ProcessError):
    """The process exited with a code its exit-code policy treats as failure.

    The message carries excerpts of both streams; ``result`` is the complete,
    untruncated result.
    """

    def __init__(self, result: ProcessResult, excerpt_chars: int = 2000) -> None:
        self.result = result
        self.exit_code = result.exit_code
        lines = [
            f"{result.tool_name} failed with exit code {result.exit_code}",
            f"Command: {result.command_line}",
        ]
        if result.stdout.strip():
            lines.append(f"stdout: {excerpt(result.stdout.strip(), excerpt_chars)}")
        if result.stderr.strip():
            lines.append(f"stderr: {excerpt(result.stderr.strip(), excerpt_chars)}")
        super().__init__("\n".join(lines))
