"""Tests for the Copilot generation backend."""

import asyncio
import json

import pytest
from copilot.generated.session_events import SessionEventType
from pydantic import BaseModel

from webapp_eval.codegen.copilot_runner import SUPPORTED_MODELS, CopilotRunner
from webapp_eval.models.config import Config
from webapp_eval.models.llm import (
    GenerationContext,
    LlmConstrainedRequest,
    LlmContextFile,
    LlmGenerateFilesRequest,
    LlmGenerateTextRequest,
)
from webapp_eval.utils.cancellation import (
    CancellationToken,
    OperationCancelledError,
)


class DummyEvent:

	def __init__(self, type_, **data):
		self.type = type_
		self.data = type("D", (), data)()


class DummySession:

	def __init__(self, reply, usage=(10, 5), error=None, hang_token=None):
		self.reply = reply
		self.usage = usage
		self.error = error
		self.hang_token = hang_token
		self.handler = None
		self.sent = []
		self.aborted = False
		self.destroyed = False

	def on(self, handler):
		self.handler = handler
		return lambda: None

	async def send_and_wait(self, options, timeout=None):
		self.sent.append(options)
		if self.hang_token is not None:
			self.hang_token.cancel("user abort")
			await asyncio.sleep(10)
		if self.error:
			self.handler(
			    DummyEvent(SessionEventType.SESSION_ERROR, message=self.error))
			return None
		self.handler(
		    DummyEvent(SessionEventType.ASSISTANT_REASONING_DELTA,
		               delta_content="thinking"))
		self.handler(
		    DummyEvent(SessionEventType.ASSISTANT_MESSAGE_DELTA,
		               delta_content=self.reply))
		self.handler(
		    DummyEvent(SessionEventType.ASSISTANT_USAGE,
		               input_tokens=self.usage[0],
		               output_tokens=self.usage[1]))
		return None

	async def get_messages(self):
		return []

	async def abort(self):
		self.aborted = True

	async def destroy(self):
		self.destroyed = True


class DummyClient:

	def __init__(self, sessions):
		self.sessions = list(sessions)
		self.configs = []
		self.started = 0
		self.stopped = 0

	async def start(self):
		self.started += 1

	async def stop(self):
		self.stopped += 1

	async def create_session(self, config):
		self.configs.append(config)
		return self.sessions.pop(0)


def _runner(*sessions):
	client = DummyClient(sessions)
	runner = CopilotRunner(Config(WEBAPP_EVAL_MODEL="my-model"),
	                       client_factory=lambda config: client)
	return runner, client


def _files_request(context_files=()):
	return LlmGenerateFilesRequest(
	    context=GenerationContext(directory="/tmp/app",
	                              system_instructions="You write Angular.",
	                              combined_prompt="You write Angular.\n\nTodo",
	                              executable_prompt="Todo"),
	    model="gpt-5",
	    context_files=list(context_files),
	)


FILES_REPLY = "Here you go:\n```json\n" + json.dumps({
    "files": [{
        "file_path": "src/app.ts",
        "code": "export class App {}"
    }]
}) + "\n```"


class Verdict(BaseModel):
	rating: int
	summary: str


class TestGenerateFiles:

	@pytest.mark.asyncio
	async def test_parses_files_and_usage(self):
		session = DummySession(FILES_REPLY)
		runner, client = _runner(session)
		response = await runner.generate_files(
		    _files_request([LlmContextFile(relative_path="src/main.ts",
		                                   content="bootstrap()")]))
		assert [(f.file_path, f.code) for f in response.files
		       ] == [("src/app.ts", "export class App {}")]
		assert response.usage.input_tokens == 10
		assert response.usage.output_tokens == 5
		assert response.usage.total_tokens == 15
		assert response.reasoning == "thinking"
		assert client.configs[0]["model"] == "gpt-5"
		assert client.configs[0]["system_message"]["content"] == (
		    "You write Angular.")
		prompt = session.sent[0]["prompt"]
		assert "You write Angular.\n\nTodo" in prompt
		assert "### src/main.ts" in prompt
		assert session.destroyed

	@pytest.mark.asyncio
	async def test_accepts_bare_file_list(self):
		reply = json.dumps([{"file_path": "a.ts", "code": "a"}])
		runner, _ = _runner(DummySession(reply))
		response = await runner.generate_files(_files_request())
		assert [f.file_path for f in response.files] == ["a.ts"]

	@pytest.mark.asyncio
	async def test_unparseable_reply_yields_no_files(self):
		runner, _ = _runner(DummySession("I could not do it."))
		response = await runner.generate_files(_files_request())
		assert response.files == []
		assert response.usage.total_tokens == 15

	@pytest.mark.asyncio
	async def test_session_error_without_text_raises(self):
		session = DummySession("", error="rate limited")
		runner, _ = _runner(session)
		with pytest.raises(RuntimeError, match="rate limited"):
			await runner.generate_files(_files_request())
		assert session.destroyed

	@pytest.mark.asyncio
	async def test_cancellation_aborts_session(self):
		token = CancellationToken()
		session = DummySession(FILES_REPLY, hang_token=token)
		runner, _ = _runner(session)
		with pytest.raises(OperationCancelledError):
			await runner.generate_files(_files_request(), token)
		assert session.aborted
		assert session.destroyed

	@pytest.mark.asyncio
	async def test_cancelled_token_skips_session(self):
		token = CancellationToken()
		token.cancel("abort")
		runner, client = _runner(DummySession(FILES_REPLY))
		with pytest.raises(OperationCancelledError):
			await runner.generate_files(_files_request(), token)
		assert client.started == 0


class TestGenerateConstrained:

	@pytest.mark.asyncio
	async def test_valid_output(self):
		session = DummySession('```json\n{"rating": 7, "summary": "ok"}\n```')
		runner, _ = _runner(session)
		response = await runner.generate_constrained(
		    LlmConstrainedRequest(model="gpt-5-mini",
		                          prompt="Rate this",
		                          schema_type=Verdict,
		                          attachments=["/tmp/shot.png"]))
		assert response.output == Verdict(rating=7, summary="ok")
		assert session.sent[0]["attachments"] == [{
		    "type": "file",
		    "path": "/tmp/shot.png"
		}]
		assert '"rating"' in session.sent[0]["prompt"]

	@pytest.mark.asyncio
	async def test_invalid_output_is_none(self):
		runner, _ = _runner(DummySession('{"rating": "high"}'))
		response = await runner.generate_constrained(
		    LlmConstrainedRequest(model="gpt-5-mini",
		                          prompt="Rate this",
		                          schema_type=Verdict))
		assert response.output is None
		assert response.usage.total_tokens == 15


@pytest.mark.asyncio
async def test_generate_text_and_client_reuse():
	runner, client = _runner(DummySession("first"), DummySession("second"))
	one = await runner.generate_text(
	    LlmGenerateTextRequest(model="gpt-5", prompt="a", system_prompt="s"))
	two = await runner.generate_text(
	    LlmGenerateTextRequest(model="gpt-5", prompt="b"))
	assert (one.text, two.text) == ("first", "second")
	assert client.started == 1
	assert "system_message" not in client.configs[1]


@pytest.mark.asyncio
async def test_dispose_stops_client_once():
	runner, client = _runner(DummySession("hi"))
	await runner.dispose()
	assert client.stopped == 0
	await runner.generate_text(LlmGenerateTextRequest(model="gpt-5",
	                                                  prompt="a"))
	await runner.dispose()
	await runner.dispose()
	assert client.stopped == 1


def test_supported_models_include_configured_model():
	runner, _ = _runner()
	models = runner.get_supported_models()
	assert models[:len(SUPPORTED_MODELS)] == SUPPORTED_MODELS
	assert "my-model" in models
