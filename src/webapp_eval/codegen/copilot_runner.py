"""
GitHub Copilot generation backend.

Each request runs in a fresh Copilot session. File generation and
constrained output ask the model for JSON in a fenced block; the JSON is
extracted leniently and validated with pydantic.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from webapp_eval.copilot_client import create_client
from webapp_eval.core.session import (
    abort_session_safe,
    build_message_options,
    build_session_config,
    destroy_session_safe,
    send_and_collect,
)
from webapp_eval.loaders.prompts import load_prompt
from webapp_eval.models.config import Config
from webapp_eval.models.llm import (
    LlmConstrainedRequest,
    LlmConstrainedResponse,
    LlmGenerateFilesRequest,
    LlmGenerateFilesResponse,
    LlmGenerateTextRequest,
    LlmGenerateTextResponse,
    LlmResponseFile,
    ToolLogEntry,
)
from webapp_eval.models.usage import Usage
from webapp_eval.ui.streaming import StreamCollector
from webapp_eval.utils.cancellation import (
    CancellationToken,
    OperationCancelledError,
)
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.parsing import extract_json
from webapp_eval.utils.protocols import CopilotClientProtocol

logger = get_logger(__name__)

SEND_TIMEOUT_SECONDS = 900

SUPPORTED_MODELS = [
    "claude-sonnet-4.5",
    "claude-sonnet-4",
    "claude-haiku-4.5",
    "claude-opus-4.1",
    "gpt-5",
    "gpt-5-mini",
    "gpt-5-codex",
    "gpt-4.1",
    "gemini-2.5-pro",
]


class _GeneratedFiles(BaseModel):
	files: list[LlmResponseFile] = Field(default_factory=list)


class _Reply(BaseModel):
	text: str
	usage: Usage
	reasoning: str = ""
	tool_logs: list[ToolLogEntry] = Field(default_factory=list)


def _format_context_files(request: LlmGenerateFilesRequest) -> str:
	if not request.context_files:
		return ""
	blocks = [
	    f"### {f.relative_path}\n```\n{f.content}\n```"
	    for f in request.context_files
	]
	return "Existing project files:\n\n" + "\n\n".join(blocks)


class CopilotRunner:
	"""LlmRunner backed by the GitHub Copilot SDK."""

	id = "copilot"
	display_name = "GitHub Copilot"

	def __init__(
	    self,
	    config: Config | None = None,
	    client_factory: Callable[[Config], CopilotClientProtocol] = create_client,
	) -> None:
		self.config = config or Config()
		self._client_factory = client_factory
		self._client: CopilotClientProtocol | None = None
		self._client_lock = asyncio.Lock()

	async def _get_client(self) -> CopilotClientProtocol:
		async with self._client_lock:
			if self._client is None:
				client = self._client_factory(self.config)
				await client.start()
				self._client = client
			return self._client

	async def _ask(
	    self,
	    *,
	    label: str,
	    model: str,
	    prompt: str,
	    system_prompt: str | None,
	    token: CancellationToken | None,
	    attachments: list[str] | None = None,
	    working_directory: str | None = None,
	) -> _Reply:
		token = token or CancellationToken(label)
		token.raise_if_cancelled()
		client = await self._get_client()
		collector = StreamCollector(label)
		session = None
		try:
			session = await client.create_session(
			    build_session_config(
			        model=model,
			        system_message=system_prompt,
			        working_directory=working_directory,
			    ))
			session.on(collector.handler)
			try:
				text = await token.run(
				    send_and_collect(
				        session,
				        build_message_options(prompt, attachments),
				        SEND_TIMEOUT_SECONDS,
				        collector,
				    ))
			except OperationCancelledError:
				await abort_session_safe(session, label)
				raise
		finally:
			await destroy_session_safe(session, label)
		if collector.errors and not text:
			raise RuntimeError(
			    f"Copilot session {label} failed: {collector.errors[-1]}")
		return _Reply(
		    text=text,
		    usage=collector.usage,
		    reasoning=collector.reasoning,
		    tool_logs=collector.tool_logs,
		)

	async def generate_files(
	    self,
	    request: LlmGenerateFilesRequest,
	    token: CancellationToken | None = None,
	) -> LlmGenerateFilesResponse:
		"""
		Generate project files for one step.

		Parameters:
			request: Prompt context, model and context files.
			token: Cancellation token.

		Returns:
			The parsed files with usage and reasoning. An unparseable
			reply yields an empty file list.
		"""
		prompt = load_prompt(
		    "generate_files.md",
		    PROMPT=request.context.combined_prompt,
		    CONTEXT_FILES=_format_context_files(request),
		)
		reply = await self._ask(
		    label=f"generate:{request.model}",
		    model=request.model,
		    prompt=prompt,
		    system_prompt=request.context.system_instructions or None,
		    token=token,
		)
		files: list[LlmResponseFile] = []
		data = extract_json(reply.text)
		if isinstance(data, list):
			data = {"files": data}
		try:
			files = _GeneratedFiles.model_validate(data or {}).files
		except ValidationError:
			logger.warning("copilot reply did not contain valid files",
			               exc_info=True)
		return LlmGenerateFilesResponse(
		    files=files,
		    reasoning=reply.reasoning,
		    usage=reply.usage,
		    tool_logs=reply.tool_logs,
		)

	async def generate_text(
	    self,
	    request: LlmGenerateTextRequest,
	    token: CancellationToken | None = None,
	) -> LlmGenerateTextResponse:
		reply = await self._ask(
		    label=f"text:{request.model}",
		    model=request.model,
		    prompt=request.prompt,
		    system_prompt=request.system_prompt,
		    token=token,
		)
		return LlmGenerateTextResponse(text=reply.text,
		                               usage=reply.usage,
		                               reasoning=reply.reasoning)

	async def generate_constrained(
	    self,
	    request: LlmConstrainedRequest,
	    token: CancellationToken | None = None,
	) -> LlmConstrainedResponse:
		"""
		Ask for output matching `request.schema_type`.

		Returns:
			Response whose `output` is a validated schema instance, or None
			if the reply could not be parsed or validated.
		"""
		schema = json.dumps(request.schema_type.model_json_schema(), indent=2)
		prompt = (f"{request.prompt}\n\nRespond only with a JSON object in a "
		          f"```json fenced block matching this JSON schema:\n"
		          f"```json\n{schema}\n```")
		reply = await self._ask(
		    label=f"constrained:{request.model}",
		    model=request.model,
		    prompt=prompt,
		    system_prompt=request.system_prompt,
		    token=token,
		    attachments=request.attachments,
		)
		output: Any = None
		data = extract_json(reply.text)
		if data is not None:
			try:
				output = request.schema_type.model_validate(data)
			except ValidationError:
				logger.warning("copilot reply did not match %s",
				               request.schema_type.__name__,
				               exc_info=True)
		return LlmConstrainedResponse(output=output,
		                              usage=reply.usage,
		                              reasoning=reply.reasoning)

	def get_supported_models(self) -> list[str]:
		models = list(SUPPORTED_MODELS)
		for extra in (self.config.model, self.config.autorater_model,
		              self.config.summary_model):
			if extra not in models:
				models.append(extra)
		return models

	async def dispose(self) -> None:
		client, self._client = self._client, None
		if client is None:
			return
		try:
			await client.stop()
		except Exception:
			logger.debug("failed to stop copilot client", exc_info=True)


__all__ = ["CopilotRunner", "SUPPORTED_MODELS"]
