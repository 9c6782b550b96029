"""
Cooperative cancellation tokens.

A `CancellationToken` is the single cancellation input threaded through
generation, build and test calls. Tokens compose: `combine_signals`
derives a token that fires as soon as any of its sources fires, which is
how the run-level abort, the per-job timeout and process signals are
merged into one.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from webapp_eval.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CancelCallback = Callable[[str], Any]


class OperationCancelledError(Exception):
	"""Raised when work is stopped because its token fired."""

	def __init__(self, reason: str | None = None):
		super().__init__(reason or "operation cancelled")
		self.reason = reason


class CancellationToken:
	"""One-shot cancellation signal with callback registration.

	The first call to `cancel()` wins; later calls are ignored and the
	original reason is kept.
	"""

	def __init__(self, label: str | None = None) -> None:
		self.label = label
		self._cancelled = False
		self._reason: str | None = None
		self._callbacks: list[CancelCallback] = []
		self._waiters: list[asyncio.Future] = []

	@property
	def cancelled(self) -> bool:
		return self._cancelled

	@property
	def reason(self) -> str | None:
		return self._reason

	def cancel(self, reason: str | None = None) -> None:
		"""Fire the token and notify callbacks and waiters."""
		if self._cancelled:
			return
		self._cancelled = True
		self._reason = reason or (f"{self.label} cancelled"
		                          if self.label else "cancelled")
		callbacks, self._callbacks = self._callbacks, []
		for cb in callbacks:
			try:
				cb(self._reason)
			except Exception:
				logger.debug("cancellation callback failed", exc_info=True)
		waiters, self._waiters = self._waiters, []
		for fut in waiters:
			if not fut.done():
				fut.set_result(self._reason)

	def add_callback(self, cb: CancelCallback) -> Callable[[], None]:
		"""
		Register a callback invoked with the reason when the token fires.

		If the token already fired, the callback runs immediately.

		Parameters:
			cb: Callable receiving the cancellation reason.

		Returns:
			A function that unregisters the callback.
		"""
		if self._cancelled:
			cb(self._reason or "cancelled")
			return lambda: None
		self._callbacks.append(cb)

		def remove() -> None:
			if cb in self._callbacks:
				self._callbacks.remove(cb)

		return remove

	async def wait(self) -> str:
		"""Wait until the token fires and return the reason."""
		if self._cancelled:
			return self._reason or "cancelled"
		fut = asyncio.get_running_loop().create_future()
		self._waiters.append(fut)
		try:
			return await fut
		finally:
			if fut in self._waiters:
				self._waiters.remove(fut)

	def raise_if_cancelled(self) -> None:
		if self._cancelled:
			raise OperationCancelledError(self._reason)

	async def run(self, awaitable: Awaitable[T]) -> T:
		"""
		Await `awaitable`, stopping it as soon as the token fires.

		Parameters:
			awaitable: Coroutine or future to run.

		Returns:
			The awaitable's result.

		Raises:
			OperationCancelledError: If the token fires first.
		"""
		self.raise_if_cancelled()
		work = asyncio.ensure_future(awaitable)
		stop = asyncio.ensure_future(self.wait())
		try:
			done, _ = await asyncio.wait({work, stop},
			                             return_when=asyncio.FIRST_COMPLETED)
		except asyncio.CancelledError:
			work.cancel()
			raise
		finally:
			stop.cancel()
		if work in done:
			return work.result()
		work.cancel()
		try:
			await work
		except (asyncio.CancelledError, Exception):
			logger.debug("work stopped after cancellation", exc_info=True)
		raise OperationCancelledError(self._reason)


def combine_signals(*tokens: CancellationToken | None) -> CancellationToken:
	"""
	Derive a token that fires when any of the given tokens fires.

	`None` entries are ignored so optional sources can be passed directly.

	Parameters:
		tokens: Upstream tokens.

	Returns:
		The combined token.
	"""
	combined = CancellationToken("combined")
	sources = [t for t in tokens if t is not None]
	for token in sources:
		if token.cancelled:
			combined.cancel(token.reason)
			return combined
	removers = []

	def on_cancel(reason: str) -> None:
		for remove in removers:
			remove()
		combined.cancel(reason)

	for token in sources:
		removers.append(token.add_callback(on_cancel))
	return combined


__all__ = [
    "CancellationToken",
    "OperationCancelledError",
    "combine_signals",
]
