"""
Main orchestrator for evaluation runs.

Resolves the environment and candidate prompts, runs one job per prompt
on the outer pool (each under a timeout with retries), and assembles the
sorted results into a `RunInfo`. A single prompt's failure is recorded
and never fails the run.
"""

from __future__ import annotations

import asyncio
import random
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path

from webapp_eval.codegen.runner_creation import get_runner_by_name
from webapp_eval.core.environment import (
    DEFAULT_PROMPT_TIMEOUT_MINUTES,
    Environment,
)
from webapp_eval.core.eval_task import run_eval_task
from webapp_eval.core.grouping import get_run_group_id
from webapp_eval.core.summary import prepare_summary
from webapp_eval.executors.local_executor import LocalExecutor
from webapp_eval.loaders.environment import load_environment
from webapp_eval.models.assessment_config import AssessmentConfig
from webapp_eval.models.config import Config
from webapp_eval.models.prompts import RootPromptDefinition, leaf_prompts
from webapp_eval.models.results import AssessmentResult
from webapp_eval.models.run_info import (
    CLASSIFIED_MARKER,
    REPORT_VERSION,
    CompletionStats,
    FailedPrompt,
    McpServerLogs,
    RunDetails,
    RunInfo,
)
from webapp_eval.ratings.rating_types import LlmBasedRating
from webapp_eval.reporting.report_logging import log_report_header
from webapp_eval.ui.progress import NoopProgressLogger
from webapp_eval.utils.cancellation import CancellationToken, combine_signals
from webapp_eval.utils.errors import UserFacingError
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.pools import WorkerPool, resolve_pool_sizes
from webapp_eval.utils.protocols import LlmRunner, ProgressLogger
from webapp_eval.utils.shared import PROCESS_CACHE
from webapp_eval.utils.timeout import CallTimeoutError, call_with_timeout

logger = get_logger(__name__)

BROWSER_INSTALL_KEY = "install-browser"


def _resolve_environment(options: AssessmentConfig,
                         settings: Config) -> Environment:
	if isinstance(options.environment, Environment):
		return options.environment
	return load_environment(options.environment, options.runner, settings)


def _validate_model(env: Environment, model: str) -> None:
	supported = env.executor.get_supported_models()
	if supported and model not in supported:
		raise UserFacingError(
		    f"Model '{model}' is not supported. Supported models: "
		    f"{', '.join(supported)}")


async def _candidate_prompts(
        env: Environment,
        options: AssessmentConfig) -> list[RootPromptDefinition]:
	"""
	Select the prompts to evaluate.

	Local mode keeps prompts with cached output. Without a name filter
	the candidates are shuffled so partial runs do not always favour the
	start of the catalog; with a filter, catalog order is kept.

	Raises:
		UserFacingError: If no prompt remains.
	"""
	prompts = list(await env.executable_prompts())
	if options.local_mode:
		cache_root = Path(options.llm_output_dir) / env.id
		prompts = [p for p in prompts if (cache_root / p.name).is_dir()]
	if options.prompt_filter:
		prompts = [p for p in prompts if options.prompt_filter in p.name]
	else:
		random.shuffle(prompts)
	prompts = prompts[:options.limit]
	if not prompts:
		message = (f"No prompts have been configured for environment "
		           f"'{env.display_name}'")
		if options.prompt_filter:
			message += f" and filtered by '{options.prompt_filter}'."
		else:
			message += "."
		raise UserFacingError(message)
	return prompts


def _uses_llm_ratings(prompts: list[RootPromptDefinition]) -> bool:
	return any(
	    isinstance(rating, LlmBasedRating) for root in prompts
	    for leaf in leaf_prompts(root) for rating in leaf.ratings)


async def _install_browser(env: Environment) -> None:
	install = getattr(env.executor, "install_browser", None)
	if install is None:
		return
	try:
		await PROCESS_CACHE.get_or_create(BROWSER_INSTALL_KEY, install)
	except Exception:
		logger.debug("browser installation failed, continuing", exc_info=True)


async def _cleanup(env: Environment | None, runners: list[LlmRunner]) -> None:
	if env is not None:
		try:
			await env.destroy()
		except Exception:
			logger.error("failed to tear down environment %s", env.id,
			             exc_info=True)
	for runner in runners:
		try:
			await runner.dispose()
		except Exception:
			logger.error("failed to dispose runner %s",
			             getattr(runner, "id", runner),
			             exc_info=True)


class _RunState:
	"""Mutable state shared by the jobs of one run."""

	def __init__(self, options: AssessmentConfig, env: Environment,
	             progress: ProgressLogger, inner_pool: WorkerPool,
	             all_tasks: CancellationToken,
	             auto_rater: LlmRunner | None,
	             journey_runner: LlmRunner | None) -> None:
		self.options = options
		self.env = env
		self.progress = progress
		self.inner_pool = inner_pool
		self.all_tasks = all_tasks
		self.auto_rater = auto_rater
		self.journey_runner = journey_runner
		self.failed_prompts: list[FailedPrompt] = []

	async def evaluate(self,
	                   root: RootPromptDefinition) -> list[AssessmentResult]:
		"""
		Run one prompt's job, retrying timeouts with a fresh EvalID.

		Returns:
			The job's results, or [] after recording a failure.
		"""
		options = self.options
		attempts = options.prompt_timeout_retries + 1
		timeout = (self.env.prompt_timeout_minutes or
		           DEFAULT_PROMPT_TIMEOUT_MINUTES)
		failure: BaseException | None = None
		for attempt in range(1, attempts + 1):
			try:
				results = await self._attempt(root, timeout)
				self.progress.eval_finished(root, results)
				return results
			except CallTimeoutError as exc:
				failure = exc
				if attempt < attempts:
					self.progress.log(
					    root, "error", "Timed out, retrying",
					    f"attempt {attempt + 1}/{attempts}")
					continue
			except Exception as exc:
				failure = exc
			break

		assert failure is not None
		logger.error("evaluation of %s failed: %s", root.name, failure)
		self.progress.log(root, "error", "Evaluation failed", str(failure))
		self.failed_prompts.append(
		    FailedPrompt(
		        prompt_name=root.name,
		        error=str(failure),
		        stack="".join(traceback.format_exception(failure)),
		    ))
		self.progress.eval_finished(root, [])
		return []

	async def _attempt(self, root: RootPromptDefinition,
	                   timeout: float) -> list[AssessmentResult]:
		executor = self.env.executor
		eval_id = await executor.initialize_eval(root)
		try:
			return await call_with_timeout(
			    f"Evaluation of {root.name}",
			    timeout,
			    lambda timeout_token: run_eval_task(
			        config=self.options,
			        env=self.env,
			        eval_id=eval_id,
			        root_prompt_def=root,
			        auto_rater=self.auto_rater,
			        user_journey_runner=self.journey_runner,
			        pool=self.inner_pool,
			        progress=self.progress,
			        token=combine_signals(self.all_tasks, timeout_token,
			                              self.options.abort_token),
			    ),
			)
		finally:
			try:
				await executor.finalize_eval(eval_id)
			except Exception:
				logger.error("failed to finalize eval %s of %s", eval_id,
				             root.name,
				             exc_info=True)


async def run_assessment(
    options: AssessmentConfig,
    progress: ProgressLogger | None = None,
    *,
    settings: Config | None = None,
) -> RunInfo:
	"""
	Run a full evaluation.

	Parameters:
		options: Run options.
		progress: Progress sink; defaults to discarding events.
		settings: Runtime settings forwarded to generation backends.

	Returns:
		The RunInfo with results sorted by prompt name.

	Raises:
		UserFacingError: For configuration problems, an unsupported model
			or an empty prompt selection.
		OperationCancelledError: If the caller aborted before the run
			started.
	"""
	settings = settings or Config()
	progress = progress or NoopProgressLogger()
	all_tasks = CancellationToken("all tasks")
	env: Environment | None = None
	runners: list[LlmRunner] = []
	progress_open = False
	remove_abort = (options.abort_token.add_callback(all_tasks.cancel)
	                if options.abort_token is not None else (lambda: None))

	def new_runner() -> LlmRunner:
		runner = get_runner_by_name(options.runner, settings)
		runners.append(runner)
		return runner

	try:
		env = _resolve_environment(options, settings)
		if options.abort_token is not None:
			options.abort_token.raise_if_cancelled()
		_validate_model(env, options.model)
		prompts = await _candidate_prompts(env, options)

		auto_rater = new_runner() if _uses_llm_ratings(prompts) else None
		journey_runner = ((auto_rater or new_runner())
		                  if options.enable_user_journey_testing else None)
		needs_summary = not options.skip_ai_summary or bool(env.analysis_prompts)
		summary_runner = ((auto_rater or journey_runner or new_runner())
		                  if needs_summary else None)

		log_report_header(env, options, len(prompts))
		await _install_browser(env)
		mcp_host = (env.executor if options.start_mcp and
		            isinstance(env.executor, LocalExecutor) else None)
		if mcp_host is not None:
			await mcp_host.start_mcp_server_host(f"mcp-{env.id}")

		outer_size, inner_size = resolve_pool_sizes(options.concurrency,
		                                            options.build_concurrency)
		outer_pool = WorkerPool("outer", outer_size)
		inner_pool = WorkerPool("inner", inner_size)
		state = _RunState(options, env, progress, inner_pool, all_tasks,
		                  auto_rater, journey_runner)

		progress.initialize(len(prompts))
		progress_open = True
		per_prompt = await asyncio.gather(
		    *(outer_pool.run(lambda root=root: state.evaluate(root))
		      for root in prompts))
		await inner_pool.on_empty()
		progress_open = False
		progress.finalize()

		mcp_logs: McpServerLogs | None = None
		if mcp_host is not None:
			mcp_logs = await mcp_host.collect_mcp_server_logs()

		results = sorted((r for batch in per_prompt for r in batch),
		                 key=lambda r: r.prompt_def.name)
		timestamp = datetime.now(timezone.utc)
		summary = await prepare_summary(
		    env=env,
		    llm=summary_runner,
		    model=options.model,
		    summary_model=options.summary_model,
		    results=results,
		    completion_stats=CompletionStats(
		        all_prompts_count=len(prompts),
		        failed_prompts=state.failed_prompts,
		    ),
		    skip_ai_summary=options.skip_ai_summary,
		    token=combine_signals(all_tasks, options.abort_token),
		)
		if env.classify_prompts:
			generation_prompt = repair_prompt = CLASSIFIED_MARKER
		else:
			generation_prompt = await env.system_prompt_generation()
			repair_prompt = await env.system_prompt_repair()
		return RunInfo(
		    id=str(uuid.uuid4()),
		    group=get_run_group_id(timestamp, env.id, options.model,
		                           env.rating_hash, options.labels),
		    version=REPORT_VERSION,
		    results=results,
		    details=RunDetails(
		        summary=summary,
		        timestamp=timestamp.isoformat(),
		        report_name=options.report_name,
		        system_prompt_generation=generation_prompt,
		        system_prompt_repair=repair_prompt,
		        labels=list(dict.fromkeys(options.labels)),
		        mcp=mcp_logs,
		    ),
		)
	except BaseException:
		all_tasks.cancel("run aborted")
		if progress_open:
			progress.finalize()
		raise
	finally:
		remove_abort()
		await _cleanup(env, runners)


__all__ = ["run_assessment"]
