import asyncio
import sys

import pytest

from webapp_eval.utils.cancellation import (
    CancellationToken,
    OperationCancelledError,
)
from webapp_eval.utils.exec import CommandError, execute_command

pytestmark = pytest.mark.skipif(sys.platform == "win32",
                                reason="uses POSIX shell commands")


@pytest.mark.asyncio
async def test_captures_output_and_exit_code(tmp_path):
	result = await execute_command("echo hello; echo oops >&2; exit 3",
	                               tmp_path)
	assert result.returncode == 3
	assert not result.ok
	assert result.stdout.strip() == "hello"
	assert result.stderr.strip() == "oops"
	assert result.output == "hello\n\noops\n"


@pytest.mark.asyncio
async def test_runs_in_cwd_with_extra_env(tmp_path):
	(tmp_path / "marker.txt").write_text("x")
	result = await execute_command("ls; echo $EVAL_FLAG",
	                               tmp_path,
	                               env={"EVAL_FLAG": "on"})
	assert result.ok
	assert "marker.txt" in result.stdout
	assert "on" in result.stdout


@pytest.mark.asyncio
async def test_check_raises_command_error(tmp_path):
	with pytest.raises(CommandError) as exc_info:
		await execute_command("exit 2", tmp_path, check=True)
	assert exc_info.value.result.returncode == 2


@pytest.mark.asyncio
async def test_token_kills_running_process(tmp_path):
	token = CancellationToken("build")

	async def fire():
		await asyncio.sleep(0.1)
		token.cancel("build cancelled")

	asyncio.ensure_future(fire())
	with pytest.raises(OperationCancelledError):
		await asyncio.wait_for(execute_command("sleep 10", tmp_path, token), 5)


@pytest.mark.asyncio
async def test_token_kills_compound_command_promptly(tmp_path):
	"""Children of the shell are killed along with it."""
	token = CancellationToken("build")
	loop = asyncio.get_running_loop()
	loop.call_later(0.2, token.cancel, "build cancelled")
	started = loop.time()
	with pytest.raises(OperationCancelledError):
		await execute_command("sleep 4; echo done > done.txt", tmp_path,
		                      token)
	assert loop.time() - started < 2
	await asyncio.sleep(0.1)
	assert not (tmp_path / "done.txt").exists()


@pytest.mark.asyncio
async def test_task_cancellation_kills_children(tmp_path):
	task = asyncio.ensure_future(
	    execute_command("sleep 1; touch orphan.txt", tmp_path))
	await asyncio.sleep(0.2)
	task.cancel()
	with pytest.raises(asyncio.CancelledError):
		await task
	await asyncio.sleep(1.5)
	assert not (tmp_path / "orphan.txt").exists()


@pytest.mark.asyncio
async def test_cancelled_token_prevents_start(tmp_path):
	token = CancellationToken()
	token.cancel("stop")
	with pytest.raises(OperationCancelledError):
		await execute_command("touch created", tmp_path, token)
	assert not (tmp_path / "created").exists()
