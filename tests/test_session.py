"""Tests for shared session utilities in core/session.py."""

import asyncio

import pytest
from copilot.generated.session_events import SessionEventType

from webapp_eval.core.session import (
    abort_session_safe,
    build_message_options,
    build_session_config,
    destroy_session_safe,
    send_and_collect,
)

# ── build_session_config ──────────────────────────────────────────────


def test_build_session_config_minimal():
	assert build_session_config(model="gpt-5") == {
	    "model": "gpt-5",
	    "streaming": True,
	}


def test_build_session_config_full():
	"""System message is appended to the CLI default."""
	config = build_session_config(model="gpt-5",
	                              streaming=False,
	                              system_message="You write Angular apps.",
	                              working_directory="/tmp/app",
	                              session_id="s1")
	assert config["streaming"] is False
	assert config["system_message"] == {
	    "mode": "append",
	    "content": "You write Angular apps.",
	}
	assert config["working_directory"] == "/tmp/app"
	assert config["session_id"] == "s1"


def test_build_message_options():
	assert build_message_options("hi") == {"prompt": "hi"}
	assert build_message_options("rate", ["/tmp/shot.png"]) == {
	    "prompt": "rate",
	    "attachments": [{
	        "type": "file",
	        "path": "/tmp/shot.png"
	    }],
	}


# ── send_and_collect ──────────────────────────────────────────────────


class _FakeCollector:
	"""Minimal collector stub."""

	def __init__(self, text=""):
		self.text = text
		self.label = "test"


class _FakeResponse:
	"""Minimal response stub."""

	def __init__(self, content):
		self.data = type("Data", (), {"content": content})()


class _FakeSession:
	"""Minimal session stub for send_and_collect tests."""

	def __init__(self, response=None, error=None, messages=None):
		self._response = response
		self._error = error
		self._messages = messages or []
		self.aborted = False
		self.destroyed = False
		self.sent = []

	async def send_and_wait(self, options, timeout=None):
		self.sent.append((options, timeout))
		if self._error:
			raise self._error
		return self._response

	async def get_messages(self):
		return self._messages

	async def abort(self):
		self.aborted = True

	async def destroy(self):
		self.destroyed = True


@pytest.mark.asyncio
async def test_send_and_collect_success():
	"""Returns response content on success."""
	session = _FakeSession(response=_FakeResponse("hello"))
	result = await send_and_collect(session, {"prompt": "p"}, 10,
	                                _FakeCollector())
	assert result == "hello"
	assert session.sent == [({"prompt": "p"}, 10)]


@pytest.mark.asyncio
async def test_send_and_collect_falls_back_to_stream():
	"""Empty response content falls back to streamed deltas."""
	session = _FakeSession(response=_FakeResponse(""))
	result = await send_and_collect(session, {"prompt": "p"}, 10,
	                                _FakeCollector(text="streamed"))
	assert result == "streamed"


@pytest.mark.asyncio
async def test_send_and_collect_falls_back_to_messages():
	message = type(
	    "Event", (), {
	        "type": SessionEventType.ASSISTANT_MESSAGE,
	        "data": type("Data", (), {"content": "stored"})(),
	    })()
	session = _FakeSession(response=None, messages=[message])
	result = await send_and_collect(session, {"prompt": "p"}, 10,
	                                _FakeCollector())
	assert result == "stored"


@pytest.mark.asyncio
async def test_send_and_collect_empty():
	session = _FakeSession(response=None)
	assert await send_and_collect(session, {"prompt": "p"}, 10,
	                              _FakeCollector()) == ""


@pytest.mark.asyncio
async def test_send_and_collect_timeout_aborts_and_raises():
	session = _FakeSession(error=asyncio.TimeoutError())
	with pytest.raises(asyncio.TimeoutError):
		await send_and_collect(session, {"prompt": "p"}, 10,
		                       _FakeCollector(text="partial"))
	assert session.aborted is True


@pytest.mark.asyncio
async def test_send_and_collect_propagates_errors():
	session = _FakeSession(error=RuntimeError("boom"))
	with pytest.raises(RuntimeError, match="boom"):
		await send_and_collect(session, {"prompt": "p"}, 10,
		                       _FakeCollector())
	assert session.aborted is False


# ── abort / destroy ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_abort_session_safe_error():

	class _FailSession:

		async def abort(self):
			raise RuntimeError("abort failed")

	await abort_session_safe(_FailSession(), "test")  # should not raise


@pytest.mark.asyncio
async def test_destroy_session_safe_none():
	"""No-op for None session."""
	await destroy_session_safe(None, "test")  # should not raise


@pytest.mark.asyncio
async def test_destroy_session_safe_success():
	"""Destroys session successfully."""
	session = _FakeSession()
	await destroy_session_safe(session, "test")
	assert session.destroyed is True


@pytest.mark.asyncio
async def test_destroy_session_safe_error():
	"""Logs but does not raise on destroy error."""

	class _FailSession:

		async def destroy(self):
			raise RuntimeError("destroy failed")

	await destroy_session_safe(_FailSession(), "test")  # should not raise
