"""
Local execution collaborator.

Generates code through an `LlmRunner` and builds, serves and tests the
generated project with shell commands from the environment definition.
All commands run in the job's project directory and are killed when the
job's cancellation token fires.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import uuid
from pathlib import Path
from typing import IO

from pydantic import ValidationError

from webapp_eval.loaders.prompts import load_prompt
from webapp_eval.models.config import DEFAULT_AUTORATER_MODEL
from webapp_eval.models.environment_config import LocalExecutorConfig
from webapp_eval.models.llm import (
    GenerationContext,
    LlmConstrainedRequest,
    LlmContextFile,
    LlmGenerateFilesRequest,
    LlmGenerateFilesResponse,
    LlmResponseFile,
)
from webapp_eval.models.results import (
    BuildResult,
    BuildResultStatus,
    ServeTestingResult,
    TestExecutionResult,
)
from webapp_eval.models.run_info import ExecutorInfo, McpServerLogs
from webapp_eval.models.usage import Usage
from webapp_eval.ratings.built_in import AutoRateOutput
from webapp_eval.utils.cancellation import CancellationToken
from webapp_eval.utils.exec import execute_command
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.parsing import extract_json
from webapp_eval.utils.protocols import LlmRunner

logger = get_logger(__name__)

MAX_ERROR_OUTPUT_CHARS = 8000


def _tail(text: str, limit: int = MAX_ERROR_OUTPUT_CHARS) -> str:
	return text if len(text) <= limit else text[-limit:]


def _format_files(files: list[LlmResponseFile]) -> str:
	return "\n\n".join(f"### {f.file_path}\n```\n{f.code}\n```" for f in files)


class LocalExecutor:
	"""Runs generation, builds and tests on the local machine."""

	def __init__(
	    self,
	    config: LocalExecutorConfig,
	    llm: LlmRunner,
	    root_path: Path | None = None,
	) -> None:
		self.config = config
		self.llm = llm
		self.root_path = Path(root_path) if root_path else Path.cwd()
		# eval id -> workspace its dependencies were installed into
		self._installed: dict[str, Path] = {}
		self._install_locks: dict[str, asyncio.Lock] = {}
		self._mcp_processes: list[asyncio.subprocess.Process] = []
		self._mcp_log_files: list[tuple[str, Path, IO[bytes]]] = []

	@property
	def source_directory(self) -> Path | None:
		"""Project template copied into every workspace, if configured."""
		if not self.config.source_directory:
			return None
		return (self.root_path / self.config.source_directory).resolve()

	async def initialize_eval(self, prompt_def) -> str:
		eval_id = uuid.uuid4().hex
		logger.debug("eval %s initialized for %s", eval_id, prompt_def.name)
		return eval_id

	async def finalize_eval(self, eval_id: str) -> None:
		self._installed.pop(eval_id, None)
		self._install_locks.pop(eval_id, None)
		logger.debug("eval %s finalized", eval_id)

	def get_supported_models(self) -> list[str]:
		return self.llm.get_supported_models()

	async def generate_initial_files(
	    self,
	    eval_id: str,
	    context: GenerationContext,
	    model: str,
	    context_files: list[LlmContextFile],
	    token: CancellationToken,
	) -> LlmGenerateFilesResponse:
		return await self.llm.generate_files(
		    LlmGenerateFilesRequest(context=context,
		                            model=model,
		                            context_files=context_files),
		    token,
		)

	async def generate_repair_files(
	    self,
	    eval_id: str,
	    context: GenerationContext,
	    error_message: str,
	    previous_files: list[LlmResponseFile],
	    context_files: list[LlmContextFile],
	    model: str,
	    token: CancellationToken,
	) -> LlmGenerateFilesResponse:
		"""
		Ask the model to fix `previous_files` given the failure output.

		The original request stays in the prompt so the model keeps the
		full picture of what the app should do.
		"""
		repair_prompt = load_prompt(
		    "repair.md",
		    ERRORS=_tail(error_message),
		    FILES=_format_files(previous_files),
		)
		repair_context = context.model_copy(update={
		    "combined_prompt":
		        f"{context.combined_prompt}\n\n{repair_prompt}",
		})
		return await self.llm.generate_files(
		    LlmGenerateFilesRequest(context=repair_context,
		                            model=model,
		                            context_files=context_files),
		    token,
		)

	async def _ensure_installed(self, eval_id: str, directory: Path,
	                            token: CancellationToken) -> BuildResult | None:
		if not self.config.install_command:
			return None
		directory = directory.resolve()
		lock = self._install_locks.setdefault(eval_id, asyncio.Lock())
		async with lock:
			if self._installed.get(eval_id) == directory:
				return None
			result = await execute_command(self.config.install_command,
			                               directory, token)
			if not result.ok:
				return BuildResult(
				    status=BuildResultStatus.ERROR,
				    message=("Dependency installation failed:\n" +
				             _tail(result.output)),
				)
			self._installed[eval_id] = directory
		return None

	async def perform_build(self, eval_id: str, directory: Path,
	                        token: CancellationToken) -> BuildResult:
		install_failure = await self._ensure_installed(eval_id, directory,
		                                               token)
		if install_failure is not None:
			return install_failure
		result = await execute_command(self.config.build_command, directory,
		                               token)
		if result.ok:
			return BuildResult(status=BuildResultStatus.SUCCESS)
		logger.debug("eval %s build failed with exit code %s", eval_id,
		             result.returncode)
		return BuildResult(status=BuildResultStatus.ERROR,
		                   message=_tail(result.output))

	async def serve_and_test(
	    self,
	    eval_id: str,
	    directory: Path,
	    token: CancellationToken,
	    *,
	    skip_screenshots: bool = False,
	    skip_axe_testing: bool = False,
	) -> ServeTestingResult | None:
		"""
		Serve the app and probe it with `runtime_check_command`.

		The command receives its options through environment variables and
		must print a JSON object shaped like `ServeTestingResult`.

		Returns:
			The parsed result, or None when no runtime check is configured.
		"""
		if not self.config.runtime_check_command:
			return None
		result = await execute_command(
		    self.config.runtime_check_command,
		    directory,
		    token,
		    env={
		        "WEBAPP_EVAL_ID": eval_id,
		        "WEBAPP_EVAL_SKIP_SCREENSHOTS": "1" if skip_screenshots else "0",
		        "WEBAPP_EVAL_SKIP_AXE": "1" if skip_axe_testing else "0",
		    },
		)
		data = extract_json(result.stdout)
		if isinstance(data, dict):
			try:
				serve = ServeTestingResult.model_validate(data)
			except ValidationError as exc:
				return ServeTestingResult(
				    error_message=f"Invalid runtime check output: {exc}")
			if skip_axe_testing:
				serve.axe_violations = []
			if skip_screenshots:
				serve.screenshot_path = None
			return serve
		if not result.ok:
			return ServeTestingResult(error_message=_tail(result.output))
		return ServeTestingResult(
		    error_message="Runtime check printed no JSON result")

	async def execute_project_tests(
	        self, eval_id: str, directory: Path,
	        token: CancellationToken) -> TestExecutionResult | None:
		if not self.config.test_command:
			return None
		result = await execute_command(self.config.test_command, directory,
		                               token)
		return TestExecutionResult(passed=result.ok,
		                           output=_tail(result.output))

	async def auto_rate_visuals(
	    self,
	    prompt: str,
	    screenshot_path: str,
	    token: CancellationToken,
	    model: str | None = None,
	) -> tuple[AutoRateOutput, Usage]:
		"""
		Rate a screenshot of the running app with the model.

		Raises:
			RuntimeError: If the model did not return a usable verdict.
		"""
		response = await self.llm.generate_constrained(
		    LlmConstrainedRequest(
		        model=model or DEFAULT_AUTORATER_MODEL,
		        prompt=prompt,
		        schema_type=AutoRateOutput,
		        attachments=[screenshot_path],
		    ),
		    token,
		)
		if response.output is None:
			raise RuntimeError("Visual rating returned no usable verdict")
		return response.output, response.usage

	async def install_browser(self) -> None:
		if not self.config.browser_install_command:
			return
		await execute_command(self.config.browser_install_command,
		                      self.root_path,
		                      check=True)

	async def start_mcp_server_host(self, name: str) -> None:
		"""Start the configured MCP servers, logging their output to files."""
		log_dir = Path(tempfile.mkdtemp(prefix=f"webapp-eval-mcp-{name}-"))
		for index, command in enumerate(self.config.mcp_servers):
			log_path = log_dir / f"server-{index}.log"
			log_file = log_path.open("wb")
			proc = await asyncio.create_subprocess_shell(
			    command,
			    cwd=str(self.root_path),
			    stdout=log_file,
			    stderr=log_file,
			    env=dict(os.environ),
			)
			logger.info("started MCP server %r (pid %s)", command, proc.pid)
			self._mcp_processes.append(proc)
			self._mcp_log_files.append((command, log_path, log_file))

	async def collect_mcp_server_logs(self) -> McpServerLogs | None:
		if not self._mcp_log_files:
			return None
		parts = []
		for command, log_path, log_file in self._mcp_log_files:
			log_file.flush()
			text = log_path.read_text(encoding="utf-8", errors="replace")
			parts.append(f"# {command}\n{text}")
		return McpServerLogs(
		    servers=[command for command, _, _ in self._mcp_log_files],
		    logs="\n\n".join(parts),
		)

	async def get_executor_info(self) -> ExecutorInfo:
		return ExecutorInfo(id="local",
		                    display_name=f"Local executor ({self.llm.display_name})")

	async def destroy(self) -> None:
		for proc in self._mcp_processes:
			if proc.returncode is None:
				try:
					proc.terminate()
					await asyncio.wait_for(proc.wait(), timeout=5)
				except (ProcessLookupError, asyncio.TimeoutError):
					logger.debug("MCP server %s did not stop cleanly", proc.pid)
		self._mcp_processes.clear()
		for _, _, log_file in self._mcp_log_files:
			log_file.close()
		await self.llm.dispose()


__all__ = ["LocalExecutor"]
