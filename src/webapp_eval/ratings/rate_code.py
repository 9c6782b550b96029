"""
Scoring engine.

Runs every rating attached to a prompt against a step's final attempt
and folds the outcomes into a `CodeAssessmentScore`. A rating's points
reduction is ``category max points * score_reduction * (1 - coefficient)``;
a category never drops below zero points.
"""

from __future__ import annotations

import inspect
from pathlib import PurePosixPath

from webapp_eval.models.llm import LlmResponseFile
from webapp_eval.models.prompts import PromptDefinition
from webapp_eval.models.results import (
    AssessmentCategory,
    BuildResult,
    CodeAssessmentScore,
    IndividualAssessment,
    ServeTestingResult,
    SkippedIndividualAssessment,
    TestExecutionResult,
)
from webapp_eval.models.usage import Usage
from webapp_eval.ratings.rating_types import (
    ExecutedLlmRatingResult,
    ExecutedRatingResult,
    LlmBasedRating,
    LlmBasedRatingContext,
    PerBuildRating,
    PerBuildRatingContext,
    PerFileRating,
    PerFileRatingContentType,
    PerFileRatingContext,
    PerFileRatingFilter,
    PerFileRatingOutcome,
    Rating,
    RatingsResult,
    SkippedRatingResult,
)
from webapp_eval.utils.cancellation import (
    CancellationToken,
    OperationCancelledError,
)
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.protocols import LlmRunner, ProgressLogger

logger = get_logger(__name__)

_CONTENT_TYPE_EXTENSIONS = {
    PerFileRatingContentType.TS: {".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"},
    PerFileRatingContentType.CSS: {".css", ".scss", ".sass", ".less"},
    PerFileRatingContentType.HTML: {".html", ".htm", ".vue", ".svelte"},
}


def _file_matches(rating: PerFileRating, file: LlmResponseFile) -> bool:
	flt = rating.filter
	if isinstance(flt, PerFileRatingFilter):
		content_type = flt.type
		if flt.pattern is not None and not flt.pattern.search(file.code):
			return False
		if flt.path_pattern is not None and not flt.path_pattern.search(
		    file.file_path):
			return False
	else:
		content_type = flt
	if content_type == PerFileRatingContentType.UNKNOWN:
		return True
	suffix = PurePosixPath(file.file_path).suffix.lower()
	return suffix in _CONTENT_TYPE_EXTENSIONS[content_type]


async def _run_per_file_rating(
    rating: PerFileRating,
    files: list[LlmResponseFile],
    ctx: PerFileRatingContext,
) -> ExecutedRatingResult | SkippedRatingResult:
	matching = [f for f in files if _file_matches(rating, f)]
	if not matching:
		return SkippedRatingResult(message="No matching files")
	total = 0.0
	errors: list[str] = []
	for file in matching:
		outcome = rating.rate(file.code, file.file_path, ctx)
		if inspect.isawaitable(outcome):
			outcome = await outcome
		if isinstance(outcome, PerFileRatingOutcome):
			total += outcome.rating
			errors.append(outcome.error_message)
		else:
			total += float(outcome)
	return ExecutedRatingResult(
	    coefficient=total / len(matching),
	    message="\n".join(errors) or None,
	)


async def rate_generated_code(
    llm: LlmRunner | None,
    env,
    prompt_def: PromptDefinition,
    full_prompt_text: str,
    output_files: list[LlmResponseFile],
    build_result: BuildResult,
    serve_testing_result: ServeTestingResult | None,
    repair_attempts: int,
    axe_repair_attempts: int,
    token: CancellationToken,
    progress: ProgressLogger,
    autorater_model: str,
    test_result: TestExecutionResult | None = None,
    test_repair_attempts: int = 0,
) -> CodeAssessmentScore:
	"""
	Score a step's final attempt.

	Parameters:
		llm: Auto-rater runner; model-based ratings are skipped without one.
		env: Environment providing rating categories.
		prompt_def: The step being rated; supplies the ratings.
		full_prompt_text: Prompt sent for generation.
		output_files: Final generated files.
		build_result: Final build outcome.
		serve_testing_result: Final serve/test outcome, if run.
		repair_attempts: Build repair rounds used.
		axe_repair_attempts: Accessibility repair rounds used.
		token: Cancellation token for model-based ratings.
		progress: Progress sink.
		autorater_model: Model for model-based ratings.
		test_result: Final test outcome, if run.
		test_repair_attempts: Test repair rounds used.

	Returns:
		The computed CodeAssessmentScore.
	"""
	progress.log(prompt_def, "rating", "Rating generated code")
	ratings_result: RatingsResult = {}
	token_usage = Usage()
	reductions: dict = {category: [] for category in env.rating_categories}

	for rating in prompt_def.ratings:
		token.raise_if_cancelled()
		category = env.rating_categories[rating.category]
		try:
			result = await _run_rating(
			    rating,
			    llm=llm,
			    env=env,
			    prompt_def=prompt_def,
			    full_prompt_text=full_prompt_text,
			    output_files=output_files,
			    build_result=build_result,
			    serve_testing_result=serve_testing_result,
			    repair_attempts=repair_attempts,
			    axe_repair_attempts=axe_repair_attempts,
			    test_result=test_result,
			    test_repair_attempts=test_repair_attempts,
			    token=token,
			    autorater_model=autorater_model,
			    ratings_result=ratings_result,
			)
		except OperationCancelledError:
			raise
		except Exception as exc:
			logger.warning("rating %s failed for %s", rating.id,
			               prompt_def.name, exc_info=True)
			result = SkippedRatingResult(message=f"Rating failed: {exc}")

		common = {
		    "id": rating.id,
		    "name": rating.name,
		    "description": rating.description,
		    "category": rating.category.value,
		    "grouping_labels": rating.grouping_labels,
		}
		if isinstance(result, SkippedRatingResult):
			assessment = SkippedIndividualAssessment(message=result.message,
			                                         **common)
		else:
			if isinstance(result, ExecutedLlmRatingResult):
				token_usage = token_usage + result.token_usage
			reduction = (category.max_points *
			             rating.score_reduction_fraction *
			             (1 - result.coefficient))
			assessment = IndividualAssessment(
			    points_reduction=reduction,
			    success_percentage=result.coefficient,
			    message=result.message,
			    **common,
			)
			reductions[rating.category].append(assessment)
		ratings_result[rating.id] = assessment

	categories: list[AssessmentCategory] = []
	for category_id, category in env.rating_categories.items():
		assessments = [
		    a for a in ratings_result.values()
		    if a.category == category_id.value
		]
		lost = sum(a.points_reduction for a in reductions[category_id])
		categories.append(
		    AssessmentCategory(
		        id=category_id.value,
		        name=category.name,
		        points=max(0.0, category.max_points - lost),
		        max_points=category.max_points,
		        assessments=assessments,
		    ))

	return CodeAssessmentScore(
	    total_points=sum(c.points for c in categories),
	    max_overall_points=sum(c.max_points for c in categories),
	    categories=categories,
	    token_usage=token_usage,
	)


async def _run_rating(
    rating: Rating,
    *,
    llm: LlmRunner | None,
    env,
    prompt_def: PromptDefinition,
    full_prompt_text: str,
    output_files: list[LlmResponseFile],
    build_result: BuildResult,
    serve_testing_result: ServeTestingResult | None,
    repair_attempts: int,
    axe_repair_attempts: int,
    test_result: TestExecutionResult | None,
    test_repair_attempts: int,
    token: CancellationToken,
    autorater_model: str,
    ratings_result: RatingsResult,
) -> ExecutedRatingResult | SkippedRatingResult:
	if isinstance(rating, PerBuildRating):
		return rating.rate(
		    PerBuildRatingContext(
		        build_result=build_result,
		        generated_files=output_files,
		        serve_result=serve_testing_result,
		        repair_attempts=repair_attempts,
		        axe_repair_attempts=axe_repair_attempts,
		        test_result=test_result,
		        test_repair_attempts=test_repair_attempts,
		        ratings_result=ratings_result,
		        prompt=prompt_def,
		    ))
	if isinstance(rating, PerFileRating):
		return await _run_per_file_rating(
		    rating, output_files,
		    PerFileRatingContext(ratings_result=ratings_result,
		                         prompt=prompt_def))
	if isinstance(rating, LlmBasedRating):
		if llm is None:
			return SkippedRatingResult(message="No auto-rater available")
		return await token.run(
		    rating.rate(
		        LlmBasedRatingContext(
		            environment=env,
		            full_prompt_text=full_prompt_text,
		            current_prompt_def=prompt_def,
		            llm=llm,
		            model=autorater_model,
		            output_files=output_files,
		            build_result=build_result,
		            serve_testing_result=serve_testing_result,
		            repair_attempts=repair_attempts,
		            axe_repair_attempts=axe_repair_attempts,
		            token=token,
		            ratings_result=ratings_result,
		        )))
	raise TypeError(f"Unsupported rating type: {type(rating).__name__}")


__all__ = ["rate_generated_code"]
