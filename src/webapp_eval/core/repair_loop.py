"""
Build, test and repair loop for one prompt step.

The loop is a small state machine::

    BUILD --ok--> SERVE_TEST --> TEST --> DONE
      |              |             |
      +--fail--> REPAIR <----------+
                   |
                   +--> BUILD

Build, accessibility ("axe") and test failures each have their own
repair ceiling; spending one never resets another. When a ceiling is
exhausted the loop ends with the last (failing) attempt so it can still
be rated. Every build, serve/test and test run takes a slot of the inner
pool.
"""

from __future__ import annotations

import enum
from pathlib import Path

from webapp_eval.core.file_system import (
    resolve_context_files,
    write_response_files,
)
from webapp_eval.models.llm import GenerationContext, LlmResponseFile
from webapp_eval.models.prompts import PromptDefinition
from webapp_eval.models.results import (
    AttemptDetails,
    BuildAndTestAttempt,
    BuildResult,
    ServeTestingResult,
    TestExecutionResult,
)
from webapp_eval.utils.cancellation import (
    CancellationToken,
    OperationCancelledError,
)
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.pools import WorkerPool
from webapp_eval.utils.protocols import Executor, ProgressLogger

logger = get_logger(__name__)

_MAX_AXE_VIOLATIONS_IN_PROMPT = 20


class Stage(enum.Enum):
	BUILD = "build"
	SERVE_TEST = "serve-test"
	TEST = "test"
	REPAIR = "repair"
	DONE = "done"


def merge_files(previous: list[LlmResponseFile],
                updates: list[LlmResponseFile]) -> list[LlmResponseFile]:
	"""Overlay `updates` on `previous` by path, keeping first-seen order."""
	merged = {f.file_path: f for f in previous}
	for f in updates:
		merged[f.file_path] = f
	return list(merged.values())


def format_axe_violations(serve: ServeTestingResult) -> str:
	lines = ["The app has the following accessibility violations:"]
	for violation in serve.axe_violations[:_MAX_AXE_VIOLATIONS_IN_PROMPT]:
		nodes = violation.get("nodes") or []
		lines.append(f"- {violation.get('id', 'unknown')} "
		             f"({violation.get('impact', 'unknown impact')}): "
		             f"{violation.get('help') or violation.get('description', '')}"
		             f" [{len(nodes)} element(s)]")
	return "\n".join(lines)


def format_test_failure(test: TestExecutionResult) -> str:
	return f"The project's tests fail with the following output:\n{test.output}"


class BuildTestRepairLoop:
	"""Drives one step's output through build, serve/test, test and repair."""

	def __init__(
	    self,
	    *,
	    executor: Executor,
	    eval_id: str,
	    prompt_def: PromptDefinition,
	    directory: Path,
	    context: GenerationContext,
	    repair_system_prompt: str,
	    model: str,
	    output_files: list[LlmResponseFile],
	    write_roots: list[Path],
	    attempt_details: list[AttemptDetails],
	    pool: WorkerPool,
	    progress: ProgressLogger,
	    token: CancellationToken,
	    max_build_repair_attempts: int,
	    max_axe_repair_attempts: int,
	    max_test_repair_attempts: int,
	    skip_screenshots: bool = False,
	    skip_axe_testing: bool = False,
	    augment_files=None,
	) -> None:
		self.executor = executor
		self.eval_id = eval_id
		self.prompt_def = prompt_def
		self.directory = directory
		self.context = context
		self.repair_system_prompt = repair_system_prompt
		self.model = model
		self.output_files = output_files
		self.write_roots = write_roots
		self.attempt_details = attempt_details
		self.pool = pool
		self.progress = progress
		self.token = token
		self.max_build_repair_attempts = max_build_repair_attempts
		self.max_axe_repair_attempts = max_axe_repair_attempts
		self.max_test_repair_attempts = max_test_repair_attempts
		self.skip_screenshots = skip_screenshots
		self.skip_axe_testing = skip_axe_testing
		self._augment_files = augment_files

		self.stage = Stage.BUILD
		self.build_repairs = 0
		self.axe_repairs = 0
		self.test_repairs = 0
		self.build_result: BuildResult | None = None
		self.serve_result: ServeTestingResult | None = None
		self.test_result: TestExecutionResult | None = None
		self._pending_error = ""

	@property
	def _current(self) -> AttemptDetails:
		if not self.attempt_details:
			self.attempt_details.append(
			    AttemptDetails(attempt=0, output_files=self.output_files))
		return self.attempt_details[-1]

	async def run(self) -> BuildAndTestAttempt | None:
		"""
		Run the loop to completion.

		Returns:
			The final attempt, or None if a repair produced nothing or
			failed.

		Raises:
			OperationCancelledError: If the job is cancelled, including
				during a repair.
		"""
		while self.stage != Stage.DONE:
			self.token.raise_if_cancelled()
			if self.stage == Stage.BUILD:
				await self._build()
			elif self.stage == Stage.SERVE_TEST:
				await self._serve_and_test()
			elif self.stage == Stage.TEST:
				await self._test()
			elif self.stage == Stage.REPAIR:
				if not await self._repair():
					return None
		return self._final_attempt()

	def _final_attempt(self) -> BuildAndTestAttempt:
		assert self.build_result is not None
		return BuildAndTestAttempt(
		    output_files=self.output_files,
		    build_result=self.build_result,
		    serve_testing_result=self.serve_result,
		    test_result=self.test_result,
		    repair_attempts=self.build_repairs,
		    axe_repair_attempts=self.axe_repairs,
		    test_repair_attempts=self.test_repairs,
		)

	async def _build(self) -> None:
		self.progress.log(self.prompt_def, "build", "Building the project")
		self.serve_result = None
		self.test_result = None
		self.build_result = await self.pool.run(
		    lambda: self.executor.perform_build(self.eval_id, self.directory,
		                                        self.token))
		self._current.build_result = self.build_result
		if self.build_result.succeeded:
			self.stage = Stage.SERVE_TEST
			return
		if self.build_repairs < self.max_build_repair_attempts:
			self.build_repairs += 1
			self.progress.log(
			    self.prompt_def, "build", "Build failed, repairing",
			    f"attempt {self.build_repairs}/{self.max_build_repair_attempts}")
			self._pending_error = self.build_result.message
			self.stage = Stage.REPAIR
			return
		self.progress.log(self.prompt_def, "error", "Build failed")
		self.stage = Stage.DONE

	async def _serve_and_test(self) -> None:
		self.progress.log(self.prompt_def, "serve-testing",
		                  "Serving and testing the app")
		self.serve_result = await self.pool.run(
		    lambda: self.executor.serve_and_test(
		        self.eval_id,
		        self.directory,
		        self.token,
		        skip_screenshots=self.skip_screenshots,
		        skip_axe_testing=self.skip_axe_testing,
		    ))
		self._current.serve_testing_result = self.serve_result
		if (self.serve_result is not None and
		    self.serve_result.axe_violations and
		    self.axe_repairs < self.max_axe_repair_attempts):
			self.axe_repairs += 1
			self.progress.log(
			    self.prompt_def, "serve-testing",
			    "Accessibility violations found, repairing",
			    f"attempt {self.axe_repairs}/{self.max_axe_repair_attempts}")
			self._pending_error = format_axe_violations(self.serve_result)
			self.stage = Stage.REPAIR
			return
		self.stage = Stage.TEST

	async def _test(self) -> None:
		self.test_result = await self.pool.run(
		    lambda: self.executor.execute_project_tests(
		        self.eval_id, self.directory, self.token))
		self._current.test_result = self.test_result
		if self.test_result is None or self.test_result.passed:
			if self.test_result is not None:
				self.progress.log(self.prompt_def, "test", "Tests passed")
			self.stage = Stage.DONE
			return
		if self.test_repairs < self.max_test_repair_attempts:
			self.test_repairs += 1
			self.progress.log(
			    self.prompt_def, "test", "Tests failed, repairing",
			    f"attempt {self.test_repairs}/{self.max_test_repair_attempts}")
			self._pending_error = format_test_failure(self.test_result)
			self.stage = Stage.REPAIR
			return
		self.progress.log(self.prompt_def, "test", "Tests failed")
		self.stage = Stage.DONE

	async def _repair(self) -> bool:
		self.progress.log(self.prompt_def, "codegen", "Repairing code")
		try:
			context_files = await resolve_context_files(
			    self.prompt_def.context_file_patterns, self.directory)
			response = await self.executor.generate_repair_files(
			    self.eval_id,
			    self.context.model_copy(
			        update={"system_instructions": self.repair_system_prompt}),
			    self._pending_error,
			    self.output_files,
			    context_files,
			    self.model,
			    self.token,
			)
		except OperationCancelledError:
			logger.info("repair of %s cancelled", self.prompt_def.name)
			raise
		except Exception:
			logger.error("repair of %s failed", self.prompt_def.name,
			             exc_info=True)
			self.progress.log(self.prompt_def, "error", "Repair failed")
			return False
		if not response.files:
			self.progress.log(self.prompt_def, "error",
			                  "Repair returned no files")
			return False

		files = response.files
		if self._augment_files is not None:
			files = self._augment_files(files)
		self.output_files = merge_files(self.output_files, files)
		try:
			await write_response_files(files, self.write_roots)
		except (OSError, ValueError):
			logger.error("writing repaired files of %s failed",
			             self.prompt_def.name,
			             exc_info=True)
			self.progress.log(self.prompt_def, "error",
			                  "Failed to write repaired files")
			return False
		self.attempt_details.append(
		    AttemptDetails(
		        attempt=len(self.attempt_details),
		        output_files=self.output_files,
		        usage=response.usage,
		        reasoning=response.reasoning,
		    ))
		self.stage = Stage.BUILD
		return True


__all__ = [
    "Stage",
    "BuildTestRepairLoop",
    "merge_files",
    "format_axe_violations",
    "format_test_failure",
]
