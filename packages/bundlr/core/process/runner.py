"""External process runner that never deadlocks, hangs or leaks the child.

Both pipes are drained concurrently by dedicated reader threads, the wait is
bounded by a timeout, and a timed-out child is killed together with every
process it spawned (packaging and signing tools start helpers).
"""

from __future__ import annotations

import os
from pathlib import Path
import shlex
import signal
import subprocess
import sys
import time
from typing import Any, BinaryIO, cast

import psutil

from bundlr.core.config.models import ProcessConfig
from bundlr.core.context import ToolContext
from bundlr.core.process.buffer import CappedBuffer, StreamReader
from bundlr.core.process.errors import (
    ExecutableNotFoundError,
    ProcessFailedError,
    ProcessStartError,
    ProcessTimeoutError,
    WorkingDirectoryNotFoundError,
)
from bundlr.core.process.models import ProcessInvocation, ProcessResult
from bundlr.core.process.policy import ExitCodePolicyRegistry
from bundlr.core.utils.logging import get_logger

logger = get_logger(__name__)

# Upper bound for waiting on killed processes to disappear.
_KILL_WAIT_SECONDS = 2.0


def format_command_line(command: list[str]) -> str:
    """Render an argument list the way the platform shell would quote it."""
    if sys.platform == "win32":
        return subprocess.list2cmdline(command)
    return shlex.join(command)


def _popen_group_kwargs() -> dict[str, Any]:
    # A separate process group lets the whole tree be signalled at once.
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def kill_process_tree(pid: int) -> list[int]:
    """Kill a process and all of its descendants.

    Descendants are collected before the parent dies (afterwards they are
    re-parented and no longer discoverable). On POSIX the process group is
    signalled as well, catching helpers that detached from the parent.

    Returns:
        PIDs that were signalled
    """
    procs: list[psutil.Process] = []
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True)
        procs.append(parent)
    except psutil.NoSuchProcess:
        pass

    killed: list[int] = []
    for proc in procs:
        try:
            proc.kill()
            killed.append(proc.pid)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            logger.warning(f"Access denied killing pid {proc.pid}: {e}")

    if sys.platform != "win32":
        try:
            os.killpg(pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            # Group already gone or never created.
            pass

    if procs:
        _gone, alive = psutil.wait_procs(procs, timeout=_KILL_WAIT_SECONDS)
        for proc in alive:
            logger.warning(f"Process {proc.pid} still alive after kill")
    return killed


class ProcessRunner:
    """Runs external executables and classifies the outcome.

    Args:
        config: Process settings (timeouts, caps, grace period, policies)
        tools: Resolves bare tool names to executables
        policies: Exit-code policy registry; built from ``config.policies`` if None

    Example:
        >>> runner = ProcessRunner()
        >>> result = runner.run(ProcessInvocation(executable="robocopy", arguments=("a", "b")))
        >>> result.success
        True
    """

    def __init__(
        self,
        config: ProcessConfig | None = None,
        tools: ToolContext | None = None,
        policies: ExitCodePolicyRegistry | None = None,
    ) -> None:
        self.config = config or ProcessConfig()
        self.tools = tools or ToolContext()
        self.policies = policies or ExitCodePolicyRegistry.from_config(self.config.policies)

    def resolve_executable(self, executable: str | Path) -> Path:
        """Resolve ``executable`` to an existing file.

        Paths (anything with a directory part) are used as given; bare names
        go through the ToolContext.

        Raises:
            ExecutableNotFoundError: If nothing resolves to a file
        """
        raw = str(executable)
        if not raw:
            raise ExecutableNotFoundError(raw)

        candidate: Path | None
        if os.sep in raw or (os.altsep and os.altsep in raw) or Path(raw).is_absolute():
            candidate = Path(raw)
        else:
            candidate = self.tools.resolve(raw)

        if candidate is None or not candidate.is_file():
            raise ExecutableNotFoundError(raw)
        return candidate

    def run(self, invocation: ProcessInvocation) -> ProcessResult:
        """Run one invocation to completion.

        Returns:
            The full result. Failed runs are returned only when the invocation
            sets ``pass_through_on_failure``.

        Raises:
            ExecutableNotFoundError: Executable does not resolve to a file
            WorkingDirectoryNotFoundError: Working directory is missing
            ProcessStartError: The OS refused to launch the process
            ProcessTimeoutError: Timeout hit; the process tree was killed
            ProcessFailedError: Exit code rejected by the tool's policy
        """
        executable = self.resolve_executable(invocation.executable)
        cwd = invocation.working_directory
        if cwd is not None and not cwd.is_dir():
            raise WorkingDirectoryNotFoundError(cwd)

        tool = invocation.label
        command = [str(executable), *invocation.arguments]
        command_line = format_command_line(command)
        timeout = invocation.timeout_seconds or self.config.default_timeout_seconds
        cap = invocation.max_output_bytes or self.config.max_output_bytes
        env = {**os.environ, **invocation.environment} if invocation.environment else None

        logger.debug(f"Running {tool} (timeout {timeout:g}s): {command_line}")

        stdout_buf = CappedBuffer(cap)
        stderr_buf = CappedBuffer(cap)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=env,
                **_popen_group_kwargs(),
            )
        except OSError as e:
            raise ProcessStartError(tool, command_line, e) from e

        # Both pipes exist: Popen was given PIPE for stdout and stderr.
        readers = [
            StreamReader(cast(BinaryIO, proc.stdout), stdout_buf, name=f"{tool}-stdout"),
            StreamReader(cast(BinaryIO, proc.stderr), stderr_buf, name=f"{tool}-stderr"),
        ]
        for reader in readers:
            reader.start()

        timed_out = False
        try:
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                timed_out = True
                logger.warning(f"{tool} exceeded {timeout:g}s, killing process tree {proc.pid}")
                kill_process_tree(proc.pid)
                try:
                    proc.wait(timeout=_KILL_WAIT_SECONDS)
                except subprocess.TimeoutExpired:
                    pass
        finally:
            # Any other exit path (KeyboardInterrupt, kill failure) must not leave a child behind.
            if proc.poll() is None:
                kill_process_tree(proc.pid)
                try:
                    proc.wait(timeout=_KILL_WAIT_SECONDS)
                except subprocess.TimeoutExpired:
                    logger.error(f"{tool} (pid {proc.pid}) did not exit after kill")
            self._drain(readers, proc.pid, tool)

        elapsed = time.monotonic() - start
        encoding = invocation.output_encoding
        exit_code = None if timed_out else proc.returncode
        policy = self.policies.resolve(executable)
        result = ProcessResult(
            tool_name=tool,
            command_line=command_line,
            exit_code=exit_code,
            stdout=stdout_buf.text(encoding),
            stderr=stderr_buf.text(encoding),
            stdout_length=stdout_buf.total_length,
            stderr_length=stderr_buf.total_length,
            stdout_truncated=stdout_buf.truncated,
            stderr_truncated=stderr_buf.truncated,
            duration_seconds=elapsed,
            success=policy.is_success(exit_code),
            pid=proc.pid,
        )

        if timed_out:
            raise ProcessTimeoutError(tool, timeout, elapsed, result)

        for name, buf in (("stdout", stdout_buf), ("stderr", stderr_buf)):
            if buf.truncated:
                logger.warning(f"{tool} {name} truncated to {cap} of {buf.total_length} bytes")

        if result.success:
            logger.debug(f"{tool} exited {result.exit_code} in {elapsed:.2f}s")
            return result

        logger.warning(f"{tool} failed with exit code {result.exit_code} after {elapsed:.2f}s")
        if invocation.pass_through_on_failure:
            return result
        raise ProcessFailedError(result, self.config.error_output_chars)

    def _drain(self, readers: list[StreamReader], pid: int, tool: str) -> None:
        """Wait (bounded) for both readers to hit EOF.

        Process exit and pipe EOF are not simultaneous, so reading the buffers
        straight after ``wait()`` would lose the tail of the output. A helper
        that inherited the pipes can keep them open forever; after the grace
        period such leftovers are killed so the readers can finish.
        """
        deadline = time.monotonic() + self.config.reader_grace_seconds
        for reader in readers:
            reader.join(max(0.0, deadline - time.monotonic()))

        if any(reader.is_alive() for reader in readers):
            logger.warning(f"{tool} output pipes still open after exit, killing leftover helpers")
            if sys.platform != "win32":
                try:
                    os.killpg(pid, signal.SIGKILL)
                except (ProcessLookupError, PermissionError):
                    pass
            for reader in readers:
                reader.join(_KILL_WAIT_SECONDS)
                if reader.is_alive():
                    logger.error(f"{tool} reader {reader.name} did not finish; output incomplete")

        for reader in readers:
            if reader.error is not None:
                logger.warning(f"{tool} reader {reader.name} failed: {reader.error}")
