"""
Protocol definitions for dependency injection.

Defines the narrow interfaces the orchestration core consumes from its
collaborators (execution, generation backends, progress display) and the
Copilot SDK client and session, so tests can substitute fakes.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Protocol

if TYPE_CHECKING:
	from webapp_eval.models.llm import (
	    GenerationContext,
	    LlmConstrainedRequest,
	    LlmConstrainedResponse,
	    LlmContextFile,
	    LlmGenerateFilesRequest,
	    LlmGenerateFilesResponse,
	    LlmGenerateTextRequest,
	    LlmGenerateTextResponse,
	    LlmResponseFile,
	)
	from webapp_eval.models.prompts import (
	    PromptDefinition,
	    RootPromptDefinition,
	)
	from webapp_eval.models.results import (
	    AssessmentResult,
	    BuildResult,
	    ServeTestingResult,
	    TestExecutionResult,
	)
	from webapp_eval.models.run_info import ExecutorInfo
	from webapp_eval.utils.cancellation import CancellationToken

ProgressType = Literal["info", "codegen", "build", "serve-testing", "test",
                       "rating", "success", "error", "eval"]


class LlmRunner(Protocol):
	"""Generation backend capability interface."""

	id: str
	display_name: str

	async def generate_files(
	    self,
	    request: "LlmGenerateFilesRequest",
	    token: "CancellationToken | None" = None,
	) -> "LlmGenerateFilesResponse":
		...

	async def generate_text(
	    self,
	    request: "LlmGenerateTextRequest",
	    token: "CancellationToken | None" = None,
	) -> "LlmGenerateTextResponse":
		...

	async def generate_constrained(
	    self,
	    request: "LlmConstrainedRequest",
	    token: "CancellationToken | None" = None,
	) -> "LlmConstrainedResponse":
		...

	def get_supported_models(self) -> list[str]:
		...

	async def dispose(self) -> None:
		...


class Executor(Protocol):
	"""Execution collaborator: owns workspaces, builds and tests.

	Optional capabilities (`post_process_system_prompt`,
	`auto_rate_visuals`, `start_mcp_server_host`,
	`collect_mcp_server_logs`, `install_browser`) are looked up with
	`getattr` and may be absent.
	"""

	async def initialize_eval(self,
	                          prompt_def: "RootPromptDefinition") -> str:
		"""Return an opaque EvalID bracketing one job."""
		...

	async def finalize_eval(self, eval_id: str) -> None:
		"""Release an EvalID. Must tolerate being called after failures."""
		...

	def get_supported_models(self) -> list[str]:
		...

	async def generate_initial_files(
	    self,
	    eval_id: str,
	    context: "GenerationContext",
	    model: str,
	    context_files: list["LlmContextFile"],
	    token: "CancellationToken",
	) -> "LlmGenerateFilesResponse":
		...

	async def generate_repair_files(
	    self,
	    eval_id: str,
	    context: "GenerationContext",
	    error_message: str,
	    previous_files: list["LlmResponseFile"],
	    context_files: list["LlmContextFile"],
	    model: str,
	    token: "CancellationToken",
	) -> "LlmGenerateFilesResponse":
		...

	async def perform_build(self, eval_id: str, directory: Path,
	                        token: "CancellationToken") -> "BuildResult":
		...

	async def serve_and_test(
	    self,
	    eval_id: str,
	    directory: Path,
	    token: "CancellationToken",
	    *,
	    skip_screenshots: bool = False,
	    skip_axe_testing: bool = False,
	) -> "ServeTestingResult | None":
		...

	async def execute_project_tests(
	        self, eval_id: str, directory: Path,
	        token: "CancellationToken") -> "TestExecutionResult | None":
		...

	async def get_executor_info(self) -> "ExecutorInfo":
		...

	async def destroy(self) -> None:
		...


class ProgressLogger(Protocol):
	"""Receives progress events from the orchestrator and jobs."""

	def initialize(self, total: int) -> None:
		...

	def log(self, prompt_def: "PromptDefinition | RootPromptDefinition",
	        type: ProgressType, message: str,
	        details: str | None = None) -> None:
		...

	def eval_finished(self, prompt_def: "RootPromptDefinition",
	                  results: list["AssessmentResult"]) -> None:
		...

	def finalize(self) -> None:
		...


class SessionProtocol(Protocol):
	"""
	Protocol for Copilot session interface.

	Defines the expected methods for interacting with a Copilot session.
	"""

	async def send_and_wait(self, options: dict,
	                        timeout: float | None = None) -> Any:
		"""Send a prompt and wait for response."""
		...

	async def abort(self) -> Any:
		"""Abort the current session operation."""
		...

	async def destroy(self) -> Any:
		"""Destroy the session and release resources."""
		...

	def on(self, handler: Any) -> Any:
		"""Register an event handler."""
		...

	async def get_messages(self) -> Any:
		"""Get all messages from the session."""
		...


class CopilotClientProtocol(Protocol):
	"""
	Protocol for Copilot client interface.

	Defines the expected methods for managing a Copilot client.
	"""

	async def start(self) -> Any:
		"""Start the client connection."""
		...

	async def stop(self) -> Any:
		"""Stop the client connection."""
		...

	async def create_session(self, config: dict) -> SessionProtocol:
		"""Create a new session with the given configuration."""
		...


__all__ = [
    "ProgressType",
    "LlmRunner",
    "Executor",
    "ProgressLogger",
    "SessionProtocol",
    "CopilotClientProtocol",
]
