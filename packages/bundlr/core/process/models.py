"""Value types for external process invocations."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ProcessInvocation(BaseModel):
    """One request to run an external executable.

    Args:
        executable: Path to the executable, or a bare tool name resolved via ToolContext
        arguments: Argument list (never passed through a shell)
        working_directory: Directory to start in (must exist); None inherits the cwd
        environment: Variables merged over the parent environment
        timeout_seconds: Hard wall-clock bound; None uses the runner default
        max_output_bytes: Cap for each captured stream; None uses the runner default
        tool_name: Label used in logs and errors; defaults to the executable stem
        pass_through_on_failure: Return failed results instead of raising
        output_encoding: Codec used to decode captured output (errors replaced)
    """

    model_config = ConfigDict(frozen=True)

    executable: Path | str
    arguments: tuple[str, ...] = ()
    working_directory: Path | None = None
    environment: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float | None = Field(default=None, gt=0)
    max_output_bytes: int | None = Field(default=None, gt=0)
    tool_name: str | None = None
    pass_through_on_failure: bool = False
    output_encoding: str = "utf-8"

    @property
    def label(self) -> str:
        """Tool name used in logs and error messages."""
        return self.tool_name or Path(str(self.executable)).stem


class ProcessResult(BaseModel):
    """Outcome of a completed (or timed-out) process run.

    ``stdout_length``/``stderr_length`` are the byte counts the child wrote;
    when they exceed the cap the captured text holds only the first
    ``max_output_bytes`` bytes and the ``*_truncated`` flag is set.
    """

    model_config = ConfigDict(frozen=True)

    tool_name: str
    command_line: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    stdout_length: int = 0
    stderr_length: int = 0
    stdout_truncated: bool = False
    stderr_truncated: bool = False
    duration_seconds: float = 0.0
    success: bool = False
    pid: int | None = None

    @property
    def combined_output(self) -> str:
        """stdout and stderr joined, for diagnostics matching."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)
