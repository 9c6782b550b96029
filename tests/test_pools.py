import asyncio

import pytest

from webapp_eval.utils.pools import WorkerPool, resolve_pool_sizes


class TestResolvePoolSizes:
	"""Outer/inner sizing rules."""

	def test_auto_uses_cpu_fraction(self):
		assert resolve_pool_sizes("auto", cpu_count=10) == (8, 4)

	def test_auto_with_single_cpu(self):
		assert resolve_pool_sizes("auto", cpu_count=1) == (1, 1)

	def test_auto_inner_is_at_most_half_of_outer(self):
		outer, inner = resolve_pool_sizes("auto", cpu_count=5)
		assert outer == 4
		assert inner == 2

	def test_explicit_concurrency_leaves_inner_unbounded(self):
		assert resolve_pool_sizes(3) == (3, None)

	def test_explicit_build_concurrency(self):
		assert resolve_pool_sizes(3, 2) == (3, 2)
		assert resolve_pool_sizes("auto", 6, cpu_count=4) == (3, 6)

	def test_auto_build_concurrency_with_explicit_outer(self):
		assert resolve_pool_sizes(6, "auto") == (6, 3)


def test_pool_rejects_zero_concurrency():
	with pytest.raises(ValueError):
		WorkerPool("outer", 0)


@pytest.mark.asyncio
async def test_pool_never_exceeds_concurrency():
	pool = WorkerPool("inner", 2)

	async def job(i):
		await asyncio.sleep(0.01)
		return i

	results = await asyncio.gather(
	    *(pool.run(lambda i=i: job(i)) for i in range(6)))
	assert results == list(range(6))
	assert pool.peak_active == 2
	assert pool.active == 0


@pytest.mark.asyncio
async def test_unbounded_pool_runs_everything_at_once():
	pool = WorkerPool("inner", None)
	gate = asyncio.Event()

	async def job():
		await gate.wait()

	tasks = [asyncio.ensure_future(pool.run(job)) for _ in range(5)]
	await asyncio.sleep(0.01)
	assert pool.active == 5
	gate.set()
	await asyncio.gather(*tasks)


@pytest.mark.asyncio
async def test_on_empty_waits_for_queued_work():
	pool = WorkerPool("inner", 1)
	done = []

	async def job(i):
		await asyncio.sleep(0.01)
		done.append(i)

	for i in range(3):
		asyncio.ensure_future(pool.run(lambda i=i: job(i)))
	await asyncio.sleep(0)
	await pool.on_empty()
	assert sorted(done) == [0, 1, 2]


@pytest.mark.asyncio
async def test_on_empty_returns_for_idle_pool():
	await asyncio.wait_for(WorkerPool("outer", 1).on_empty(), 1)
