"""
Deadline wrapper for long-running operations.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from webapp_eval.utils.cancellation import CancellationToken

T = TypeVar("T")


class CallTimeoutError(Exception):
	"""Raised when `call_with_timeout` hits its deadline.

	Kept apart from generic failures so callers can retry timeouts only.
	"""

	def __init__(self, description: str, duration_minutes: float):
		super().__init__(
		    f"{description} timed out after {duration_minutes:g} minute(s)")
		self.description = description
		self.duration_minutes = duration_minutes


async def call_with_timeout(
    description: str,
    duration_minutes: float,
    fn: Callable[[CancellationToken], Awaitable[T]],
) -> T:
	"""
	Run `fn` with a token that fires when the duration elapses.

	On expiry the running task is cancelled, the token is fired so that
	work derived from it outside this task stops too, and a
	`CallTimeoutError` is raised.

	Parameters:
		description: Human-readable label used in the timeout error.
		duration_minutes: Deadline in minutes.
		fn: Callable receiving the timeout token.

	Returns:
		Whatever `fn` returns.

	Raises:
		CallTimeoutError: When the deadline is reached. Timeouts raised by
			`fn` itself before the deadline propagate unchanged.
	"""
	token = CancellationToken(description)
	deadline = asyncio.timeout(duration_minutes * 60)
	try:
		async with deadline:
			return await fn(token)
	except TimeoutError as exc:
		if not deadline.expired():
			raise
		token.cancel(f"{description} timed out")
		raise CallTimeoutError(description, duration_minutes) from exc


__all__ = ["CallTimeoutError", "call_with_timeout"]
