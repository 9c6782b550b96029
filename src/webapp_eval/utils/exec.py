"""
Subprocess execution helpers.

Build, test and install commands run as shell subprocesses so the
operating system parallelizes them while the orchestrator stays single
threaded. Every command honours a cancellation token: when the token
fires, the command's process group is killed and
`OperationCancelledError` is raised.
"""

from __future__ import annotations

import asyncio
import os
import signal
from dataclasses import dataclass
from pathlib import Path

from webapp_eval.utils.cancellation import (
    CancellationToken,
    OperationCancelledError,
)
from webapp_eval.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
	"""Outcome of a finished shell command."""

	command: str
	returncode: int
	stdout: str
	stderr: str

	@property
	def ok(self) -> bool:
		return self.returncode == 0

	@property
	def output(self) -> str:
		"""Combined stdout and stderr, in that order."""
		return "\n".join(p for p in (self.stdout, self.stderr) if p)


class CommandError(RuntimeError):
	"""Raised by `execute_command` for non-zero exit codes when checked."""

	def __init__(self, result: CommandResult):
		super().__init__(
		    f"Command '{result.command}' failed with exit code "
		    f"{result.returncode}: {result.stderr[:500]}")
		self.result = result


async def execute_command(
    command: str,
    cwd: str | Path,
    token: CancellationToken | None = None,
    *,
    check: bool = False,
    env: dict[str, str] | None = None,
) -> CommandResult:
	"""
	Run a shell command and capture its output.

	Parameters:
		command: Shell command line.
		cwd: Working directory.
		token: Optional cancellation token; firing it kills the process.
		check: Raise `CommandError` on a non-zero exit code.
		env: Extra environment variables merged over the current ones.

	Returns:
		CommandResult with decoded output.

	Raises:
		OperationCancelledError: If the token fires while running.
		CommandError: If `check` is set and the command fails.
	"""
	if token:
		token.raise_if_cancelled()
	logger.debug("exec %s (cwd=%s)", command, cwd)
	proc = await asyncio.create_subprocess_shell(
	    command,
	    cwd=str(cwd),
	    stdout=asyncio.subprocess.PIPE,
	    stderr=asyncio.subprocess.PIPE,
	    start_new_session=True,
	    env={
	        **os.environ,
	        **(env or {})
	    },
	)

	def kill(_reason: str) -> None:
		# the shell leads its own process group; children hold the pipes
		try:
			os.killpg(proc.pid, signal.SIGKILL)
		except (ProcessLookupError, PermissionError):
			pass

	remove = token.add_callback(kill) if token else (lambda: None)
	try:
		stdout, stderr = await proc.communicate()
	except asyncio.CancelledError:
		kill("task cancelled")
		raise
	finally:
		remove()

	if token and token.cancelled:
		raise OperationCancelledError(token.reason)

	result = CommandResult(
	    command=command,
	    returncode=proc.returncode if proc.returncode is not None else -1,
	    stdout=stdout.decode(errors="replace"),
	    stderr=stderr.decode(errors="replace"),
	)
	if check and not result.ok:
		raise CommandError(result)
	return result


__all__ = ["CommandResult", "CommandError", "execute_command"]
