import asyncio

import pytest

from webapp_eval.utils.cancellation import (
    CancellationToken,
    OperationCancelledError,
    combine_signals,
)


class TestCancellationToken:

	def test_first_cancel_wins(self):
		token = CancellationToken("job")
		token.cancel("first")
		token.cancel("second")
		assert token.cancelled
		assert token.reason == "first"

	def test_default_reason_uses_label(self):
		token = CancellationToken("abort")
		token.cancel()
		assert token.reason == "abort cancelled"

	def test_callback_runs_once_with_reason(self):
		token = CancellationToken()
		seen = []
		token.add_callback(seen.append)
		token.cancel("stop")
		token.cancel("again")
		assert seen == ["stop"]

	def test_callback_on_fired_token_runs_immediately(self):
		token = CancellationToken()
		token.cancel("already")
		seen = []
		token.add_callback(seen.append)
		assert seen == ["already"]

	def test_removed_callback_is_not_called(self):
		token = CancellationToken()
		seen = []
		remove = token.add_callback(seen.append)
		remove()
		token.cancel("stop")
		assert seen == []

	def test_raise_if_cancelled(self):
		token = CancellationToken()
		token.raise_if_cancelled()
		token.cancel("halt")
		with pytest.raises(OperationCancelledError) as exc_info:
			token.raise_if_cancelled()
		assert exc_info.value.reason == "halt"


@pytest.mark.asyncio
async def test_run_returns_result_when_not_cancelled():
	token = CancellationToken()

	async def work():
		return 42

	assert await token.run(work()) == 42


@pytest.mark.asyncio
async def test_run_stops_work_when_token_fires():
	token = CancellationToken()
	started = asyncio.Event()
	finished = []

	async def work():
		started.set()
		await asyncio.sleep(10)
		finished.append(True)

	task = asyncio.ensure_future(token.run(work()))
	await started.wait()
	token.cancel("user abort")
	with pytest.raises(OperationCancelledError) as exc_info:
		await task
	assert exc_info.value.reason == "user abort"
	assert finished == []


@pytest.mark.asyncio
async def test_wait_returns_reason():
	token = CancellationToken()
	waiter = asyncio.ensure_future(token.wait())
	await asyncio.sleep(0)
	token.cancel("done")
	assert await waiter == "done"


class TestCombineSignals:

	def test_fires_when_any_source_fires(self):
		a = CancellationToken("a")
		b = CancellationToken("b")
		combined = combine_signals(a, None, b)
		assert not combined.cancelled
		b.cancel("b fired")
		assert combined.cancelled
		assert combined.reason == "b fired"

	def test_already_cancelled_source(self):
		a = CancellationToken()
		a.cancel("early")
		combined = combine_signals(a, CancellationToken())
		assert combined.cancelled
		assert combined.reason == "early"

	def test_combined_does_not_fire_sources(self):
		a = CancellationToken()
		combined = combine_signals(a)
		combined.cancel("local")
		assert not a.cancelled

	def test_no_sources(self):
		assert not combine_signals(None).cancelled
