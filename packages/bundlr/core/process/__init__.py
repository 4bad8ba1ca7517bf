"""Safe external process execution.

Example:
    >>> from bundlr.core.process import ProcessInvocation, ProcessRunner
    >>> runner = ProcessRunner()
    >>> result = runner.run(ProcessInvocation(executable="/usr/bin/env", arguments=("true",)))
"""

from bundlr.core.process.buffer import CappedBuffer
from bundlr.core.process.errors import (
    ExecutableNotFoundError,
    ProcessError,
    ProcessFailedError,
    ProcessStartError,
    ProcessTimeoutError,
    WorkingDirectoryNotFoundError,
)
from bundlr.core.process.models import ProcessInvocation, ProcessResult
from bundlr.core.process.policy import ExitCodePolicy, ExitCodePolicyRegistry, tool_key
from bundlr.core.process.runner import ProcessRunner, format_command_line, kill_process_tree

__all__ = [
    # Runner
    "ProcessRunner",
    "ProcessInvocation",
    "ProcessResult",
    "CappedBuffer",
    "format_command_line",
    "kill_process_tree",
    # Policies
    "ExitCodePolicy",
    "ExitCodePolicyRegistry",
    "tool_key",
    # Errors
    "ProcessError",
    "ExecutableNotFoundError",
    "WorkingDirectoryNotFoundError",
    "ProcessStartError",
    "ProcessTimeoutError",
    "ProcessFailedError",
]
