"""
Evaluation job executor.

Runs one root prompt end to end: generation, writing files, optional
user-journey generation, the build/test/repair loop and rating, once per
step. Steps of a multi-step prompt share one project directory and run in
order, each editing what the previous ones produced.
"""

from __future__ import annotations

from pathlib import Path

from webapp_eval.core.file_system import (
    llm_output_directory,
    load_local_output,
    resolve_context_files,
    setup_project_structure,
    write_response_files,
)
from webapp_eval.core.repair_loop import BuildTestRepairLoop
from webapp_eval.core.user_journeys import generate_user_journeys_for_app
from webapp_eval.models.assessment_config import AssessmentConfig
from webapp_eval.models.llm import (
    GenerationContext,
    LlmContextFile,
    LlmGenerateFilesResponse,
)
from webapp_eval.models.prompts import (
    MultiStepPromptDefinition,
    PromptDefinition,
    RootPromptDefinition,
    leaf_prompts,
)
from webapp_eval.models.results import (
    AssessmentResult,
    AttemptDetails,
    PromptIdentity,
    UserJourneysResult,
)
from webapp_eval.ratings.rate_code import rate_generated_code
from webapp_eval.utils.cancellation import (
    CancellationToken,
    OperationCancelledError,
)
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.pools import WorkerPool
from webapp_eval.utils.protocols import LlmRunner, ProgressLogger

logger = get_logger(__name__)


async def _system_instructions(env, step: PromptDefinition) -> str:
	if step.system_prompt_type == "editing":
		return await env.system_prompt_editing()
	return await env.system_prompt_generation()


async def _generate_initial_files(
    *,
    config: AssessmentConfig,
    env,
    eval_id: str,
    step: PromptDefinition,
    context: GenerationContext,
    context_files: list[LlmContextFile],
    progress: ProgressLogger,
    token: CancellationToken,
) -> LlmGenerateFilesResponse | None:
	try:
		if config.local_mode:
			progress.log(step, "codegen", "Loading generated code from disk")
			return await load_local_output(config.llm_output_dir, env.id,
			                               step.name)
		progress.log(step, "codegen", "Generating code")
		return await env.executor.generate_initial_files(
		    eval_id, context, config.model, context_files, token)
	except OperationCancelledError:
		raise
	except Exception:
		logger.error("code generation for %s failed", step.name, exc_info=True)
		return None


def _write_roots(config: AssessmentConfig, env, root: RootPromptDefinition,
                 step: PromptDefinition, directory: Path) -> list[Path]:
	roots = [directory]
	if config.local_mode:
		# the cache is the source of the files in local mode
		return roots
	roots.append(llm_output_directory(config.llm_output_dir, env.id,
	                                  step.name))
	if isinstance(root, MultiStepPromptDefinition):
		roots.append(
		    llm_output_directory(config.llm_output_dir, env.id, root.name) /
		    step.name)
	return roots


async def run_eval_task(
    *,
    config: AssessmentConfig,
    env,
    eval_id: str,
    root_prompt_def: RootPromptDefinition,
    auto_rater: LlmRunner | None,
    user_journey_runner: LlmRunner | None,
    pool: WorkerPool,
    progress: ProgressLogger,
    token: CancellationToken,
) -> list[AssessmentResult]:
	"""
	Evaluate one root prompt.

	Parameters:
		config: Run options.
		env: The run's Environment.
		eval_id: EvalID obtained from the executor.
		root_prompt_def: Single or multi-step prompt.
		auto_rater: Runner for model-based ratings, if any.
		user_journey_runner: Runner for journey generation, required when
			user-journey testing is enabled.
		pool: Inner pool gating builds and tests.
		progress: Progress sink.
		token: Job cancellation token.

	Returns:
		One result per completed step. A step whose generation, writing
		or repair fails ends the job early; earlier results are kept.

	Raises:
		OperationCancelledError: If the job is cancelled.
		RuntimeError: If user-journey testing is enabled without a runner.
	"""
	directory, cleanup = await setup_project_structure(
	    env, root_prompt_def, progress, config.output_directory)
	results: list[AssessmentResult] = []
	steps = leaf_prompts(root_prompt_def)
	user_journeys: UserJourneysResult | None = None
	try:
		for index, step in enumerate(steps):
			token.raise_if_cancelled()
			full_prompt = await env.get_prompt(step.system_prompt_type,
			                                   step.prompt, config.rag_endpoint)
			context = GenerationContext(
			    directory=str(directory),
			    system_instructions=await _system_instructions(env, step),
			    combined_prompt=full_prompt,
			    executable_prompt=step.prompt,
			)
			context_files = await resolve_context_files(
			    step.context_file_patterns, directory)

			response = await _generate_initial_files(
			    config=config,
			    env=env,
			    eval_id=eval_id,
			    step=step,
			    context=context,
			    context_files=context_files,
			    progress=progress,
			    token=token,
			)
			if response is None or not response.files:
				progress.log(step, "error", "Code generation produced no files")
				logger.error("no files generated for %s", step.name)
				break

			files = env.augment_response_files(response.files)
			write_roots = _write_roots(config, env, root_prompt_def, step,
			                           directory)
			try:
				await write_response_files(files, write_roots)
			except (OSError, ValueError) as exc:
				progress.log(step, "error", "Failed to write generated files",
				             str(exc))
				logger.error("writing files of %s failed", step.name,
				             exc_info=True)
				break

			attempt_details = [
			    AttemptDetails(
			        attempt=0,
			        output_files=files,
			        usage=response.usage,
			        reasoning=response.reasoning,
			    )
			]

			if config.enable_user_journey_testing:
				if user_journey_runner is None:
					raise RuntimeError(
					    "User journey testing is enabled but no runner exists")
				if index == 0:
					progress.log(step, "codegen", "Generating user journeys")
					user_journeys = await generate_user_journeys_for_app(
					    user_journey_runner,
					    root_prompt_def.name,
					    steps[0].prompt,
					    files,
					    config.autorater_model,
					    token,
					)

			attempt = await BuildTestRepairLoop(
			    executor=env.executor,
			    eval_id=eval_id,
			    prompt_def=step,
			    directory=directory,
			    context=context,
			    repair_system_prompt=await env.system_prompt_repair(),
			    model=config.model,
			    output_files=files,
			    write_roots=write_roots,
			    attempt_details=attempt_details,
			    pool=pool,
			    progress=progress,
			    token=token,
			    max_build_repair_attempts=config.max_build_repair_attempts,
			    max_axe_repair_attempts=config.axe_repair_ceiling,
			    max_test_repair_attempts=config.max_test_repair_attempts,
			    skip_screenshots=config.skip_screenshots,
			    skip_axe_testing=config.skip_axe_testing,
			    augment_files=env.augment_response_files,
			).run()
			if attempt is None:
				progress.log(step, "error", "Build/repair loop failed")
				break

			score = await rate_generated_code(
			    auto_rater,
			    env,
			    step,
			    full_prompt,
			    attempt.output_files,
			    attempt.build_result,
			    attempt.serve_testing_result,
			    attempt.repair_attempts,
			    attempt.axe_repair_attempts,
			    token,
			    progress,
			    config.autorater_model,
			    attempt.test_result,
			    attempt.test_repair_attempts,
			)
			results.append(
			    AssessmentResult(
			        prompt_def=PromptIdentity(name=step.name,
			                                  prompt=step.prompt),
			        output_files=attempt.output_files,
			        final_attempt=attempt,
			        score=score,
			        repair_attempts=attempt.repair_attempts,
			        axe_repair_attempts=attempt.axe_repair_attempts,
			        test_repair_attempts=attempt.test_repair_attempts,
			        attempt_details=attempt_details,
			        user_journeys=user_journeys,
			        tool_logs=response.tool_logs,
			        test_result=attempt.test_result,
			    ))
			progress.log(
			    step, "success",
			    f"Scored {score.total_points:g}/{score.max_overall_points:g}")
	finally:
		try:
			await cleanup()
		except Exception:
			logger.warning("workspace cleanup for %s failed",
			               root_prompt_def.name,
			               exc_info=True)
	return results


__all__ = ["run_eval_task"]
