"""
Bounded concurrency pools.

Two independent, semaphore-backed pools gate the run: the outer pool
limits concurrently running jobs, the inner pool limits concurrently
running heavy operations (builds, serve/test runs, test commands). A job
holds one outer slot for its whole lifetime and separately acquires inner
slots per heavy operation.
"""

from __future__ import annotations

import asyncio
import math
import os
from typing import Awaitable, Callable, Literal, TypeVar

from webapp_eval.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Concurrency = int | Literal["auto"]

OUTER_CPU_FRACTION = 0.8
INNER_FRACTION = 0.5


class WorkerPool:
	"""Semaphore-backed pool; `concurrency=None` means unbounded."""

	def __init__(self, name: str, concurrency: int | None) -> None:
		if concurrency is not None and concurrency < 1:
			raise ValueError(f"{name} pool concurrency must be >= 1")
		self.name = name
		self.concurrency = concurrency
		self._sem = (asyncio.Semaphore(concurrency)
		             if concurrency is not None else None)
		self.active = 0
		self.peak_active = 0
		self._pending = 0
		self._idle = asyncio.Event()
		self._idle.set()

	async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
		"""
		Run `fn` once a slot is free.

		Parameters:
			fn: Zero-argument coroutine factory.

		Returns:
			The coroutine's result.
		"""
		self._pending += 1
		self._idle.clear()
		try:
			if self._sem is None:
				return await self._run_in_slot(fn)
			async with self._sem:
				return await self._run_in_slot(fn)
		finally:
			self._pending -= 1
			if self._pending == 0:
				self._idle.set()

	async def _run_in_slot(self, fn: Callable[[], Awaitable[T]]) -> T:
		self.active += 1
		self.peak_active = max(self.peak_active, self.active)
		try:
			return await fn()
		finally:
			self.active -= 1

	async def on_empty(self) -> None:
		"""Wait until no work is queued or running."""
		await self._idle.wait()


def available_parallelism() -> int:
	"""Number of CPUs usable by this process."""
	if hasattr(os, "process_cpu_count"):
		count = os.process_cpu_count()
	elif hasattr(os, "sched_getaffinity"):
		count = len(os.sched_getaffinity(0))
	else:
		count = os.cpu_count()
	return count or 1


def resolve_pool_sizes(
    concurrency: Concurrency,
    build_concurrency: Concurrency | None = None,
    cpu_count: int | None = None,
) -> tuple[int, int | None]:
	"""
	Compute outer (job) and inner (build/test) pool sizes.

	Builds are CPU-heavy and run underneath already-parallel jobs, so the
	automatic inner size is half of the outer one.

	Parameters:
		concurrency: Explicit job concurrency or "auto".
		build_concurrency: Explicit inner size, "auto", or None to follow
			`concurrency` (auto when it is auto, unbounded otherwise).
		cpu_count: Override for the detected CPU count.

	Returns:
		Tuple of (outer size, inner size or None for unbounded).
	"""
	if concurrency == "auto":
		cpus = cpu_count if cpu_count is not None else available_parallelism()
		outer = max(1, math.floor(cpus * OUTER_CPU_FRACTION))
	else:
		outer = int(concurrency)

	if build_concurrency is None:
		build_concurrency = "auto" if concurrency == "auto" else None
	if build_concurrency == "auto":
		inner: int | None = max(1, math.floor(outer * INNER_FRACTION))
	elif build_concurrency is None:
		inner = None
	else:
		inner = int(build_concurrency)
	logger.debug("pool sizes resolved outer=%s inner=%s", outer, inner)
	return outer, inner


__all__ = [
    "Concurrency",
    "WorkerPool",
    "available_parallelism",
    "resolve_pool_sizes",
]
