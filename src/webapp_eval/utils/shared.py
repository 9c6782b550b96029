"""
Process-scoped memoization of shared async operations.

Concurrent jobs that need the same one-time operation (e.g. installing
the browser used for runtime checks) await one shared future instead of
racing duplicate work. The cache is torn down explicitly at shutdown.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from webapp_eval.utils.logging import get_logger

logger = get_logger(__name__)


class SharedFutureCache:
	"""Cache of in-flight or completed operations keyed by identity."""

	def __init__(self) -> None:
		self._futures: dict[str, asyncio.Future] = {}

	def get_or_create(
	    self,
	    key: str,
	    factory: Callable[[], Awaitable[Any]],
	) -> asyncio.Future:
		"""
		Return the shared future for `key`, starting `factory` on first use.

		Parameters:
			key: Operation identity.
			factory: Zero-argument coroutine factory.

		Returns:
			Future shared by every caller using the same key. Awaiting it
			re-raises the operation's error, if any.
		"""
		fut = self._futures.get(key)
		if fut is None or (fut.cancelled()):
			fut = asyncio.ensure_future(factory())
			self._futures[key] = fut
			logger.debug("shared operation started: %s", key)
		return fut

	def __contains__(self, key: str) -> bool:
		return key in self._futures

	async def close(self) -> None:
		"""Cancel pending operations and forget all entries."""
		futures, self._futures = self._futures, {}
		for key, fut in futures.items():
			if not fut.done():
				logger.debug("cancelling shared operation: %s", key)
				fut.cancel()
		for fut in futures.values():
			try:
				await fut
			except asyncio.CancelledError:
				pass
			except Exception:
				logger.debug("shared operation failed", exc_info=True)


# One cache per process; `main` closes it before the event loop ends.
PROCESS_CACHE = SharedFutureCache()

__all__ = ["SharedFutureCache", "PROCESS_CACHE"]
