"""
Built-in ratings.

YAML environments refer to these by id; Python environments may also
import and reconfigure them (e.g. ``SUCCESSFUL_BUILD.model_copy(...)``).
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from webapp_eval.loaders.prompts import load_prompt
from webapp_eval.models.llm import LlmConstrainedRequest
from webapp_eval.ratings.rating_types import (
    ExecutedLlmRatingResult,
    ExecutedRatingResult,
    LlmBasedRating,
    LlmBasedRatingContext,
    LlmBasedRatingResult,
    LlmRatingDetails,
    PerBuildRating,
    PerBuildRatingContext,
    PerBuildRatingResult,
    PerFileRating,
    PerFileRatingContentType,
    PerFileRatingContext,
    PerFileRatingOutcome,
    PerFileRatingResult,
    Rating,
    RatingCategory,
    SkippedRatingResult,
)

MIN_RATING = 1
MAX_RATING = 10

_TODO_RE = re.compile(r"(//|/\*|<!--|#)\s*(TODO|FIXME)\b", re.IGNORECASE)
_MAX_FILE_CHARS = 20_000


class AutoRateOutput(BaseModel):
	"""Structured verdict requested from the auto-rater model."""

	rating: float = Field(
	    ..., description=f"Rating from {MIN_RATING}-{MAX_RATING}. Best is "
	    f"{MAX_RATING}.")
	summary: str = Field(..., description="Concise summary of the code")
	categories: list[dict[str, str]] = Field(
	    default_factory=list,
	    description="Items with 'name' and 'message' describing problems")


def get_coefficient(rating: float, max_rating: float = MAX_RATING) -> float:
	return max(0.0, min(1.0, rating / max_rating))


def _rate_build(ctx: PerBuildRatingContext) -> PerBuildRatingResult:
	if ctx.build_result.succeeded:
		return ExecutedRatingResult(coefficient=1)
	return ExecutedRatingResult(coefficient=0,
	                            message=ctx.build_result.message[:2000])


def _rate_runtime_errors(ctx: PerBuildRatingContext) -> PerBuildRatingResult:
	if not ctx.build_result.succeeded:
		return SkippedRatingResult(message="Build failed")
	if ctx.serve_result is None:
		return SkippedRatingResult(message="Runtime checks were not run")
	if ctx.serve_result.error_message:
		return ExecutedRatingResult(coefficient=0,
		                            message=ctx.serve_result.error_message)
	errors = ctx.serve_result.runtime_errors
	if not errors:
		return ExecutedRatingResult(coefficient=1)
	return ExecutedRatingResult(
	    coefficient=0,
	    message=f"{len(errors)} runtime error(s):\n" + "\n".join(errors[:10]))


def _rate_tests(ctx: PerBuildRatingContext) -> PerBuildRatingResult:
	if ctx.test_result is None:
		return SkippedRatingResult(message="No tests were run")
	if ctx.test_result.passed:
		return ExecutedRatingResult(coefficient=1)
	return ExecutedRatingResult(coefficient=0,
	                            message=ctx.test_result.output[-2000:])


def _rate_axe(ctx: PerBuildRatingContext) -> PerBuildRatingResult:
	if ctx.serve_result is None:
		return SkippedRatingResult(message="Accessibility checks were not run")
	violations = ctx.serve_result.axe_violations
	if not violations:
		return ExecutedRatingResult(coefficient=1)
	ids = sorted({str(v.get("id", "unknown")) for v in violations})
	return ExecutedRatingResult(
	    coefficient=0,
	    message=f"{len(violations)} violation(s): {', '.join(ids)}")


def _rate_repair_count(ctx: PerBuildRatingContext) -> PerBuildRatingResult:
	# Full marks without repairs, half after one, none after more.
	if ctx.repair_attempts == 0:
		return ExecutedRatingResult(coefficient=1)
	coefficient = 0.5 if ctx.repair_attempts == 1 else 0
	return ExecutedRatingResult(
	    coefficient=coefficient,
	    message=f"Build needed {ctx.repair_attempts} repair attempt(s)")


def _rate_todo_comments(code: str, file_path: str | None,
                        ctx: PerFileRatingContext) -> PerFileRatingResult:
	matches = _TODO_RE.findall(code)
	if not matches:
		return 1.0
	return PerFileRatingOutcome(
	    rating=0,
	    error_message=f"{file_path or 'file'} has {len(matches)} TODO comment(s)",
	)


async def _rate_code_quality(ctx: LlmBasedRatingContext) -> LlmBasedRatingResult:
	if not ctx.output_files:
		return SkippedRatingResult(message="No generated files")
	files = "\n\n".join(f"### {f.file_path}\n```\n{f.code[:_MAX_FILE_CHARS]}\n```"
	                    for f in ctx.output_files)
	custom_prompt = getattr(ctx.environment, "code_rating_prompt_path", None)
	if custom_prompt is not None:
		instructions = ctx.environment.render_prompt(
		    custom_prompt.read_text(encoding="utf-8"), custom_prompt).result
	else:
		instructions = load_prompt("code_rating.md")
	prompt = ctx.environment.render_prompt(
	    instructions,
	    None,
	    {
	        "APP_PROMPT": ctx.current_prompt_def.prompt,
	        "FILES": files,
	        "MIN_RATING": str(MIN_RATING),
	        "MAX_RATING": str(MAX_RATING),
	    },
	).result
	response = await ctx.llm.generate_constrained(
	    LlmConstrainedRequest(
	        model=ctx.model,
	        prompt=prompt,
	        schema_type=AutoRateOutput,
	    ),
	    ctx.token,
	)
	output: AutoRateOutput | None = response.output
	if output is None:
		return SkippedRatingResult(
		    message="Auto-rater did not return a usable verdict")
	return ExecutedLlmRatingResult(
	    coefficient=get_coefficient(output.rating),
	    message=output.summary,
	    token_usage=response.usage,
	    details=LlmRatingDetails(summary=output.summary,
	                             categories=output.categories),
	)


async def _rate_visuals(ctx: LlmBasedRatingContext) -> LlmBasedRatingResult:
	auto_rate = getattr(ctx.environment.executor, "auto_rate_visuals", None)
	serve = ctx.serve_testing_result
	if auto_rate is None:
		return SkippedRatingResult(
		    message="Executor does not support visual rating")
	if serve is None or not serve.screenshot_path:
		return SkippedRatingResult(message="No screenshot available")
	prompt = ctx.environment.render_prompt(
	    load_prompt("visual_rating.md"),
	    None,
	    {
	        "APP_PROMPT": ctx.current_prompt_def.prompt,
	        "MIN_RATING": str(MIN_RATING),
	        "MAX_RATING": str(MAX_RATING),
	    },
	).result
	output, usage = await auto_rate(prompt,
	                                 serve.screenshot_path,
	                                 ctx.token,
	                                 model=ctx.model)
	return ExecutedLlmRatingResult(
	    coefficient=get_coefficient(output.rating),
	    message=output.summary,
	    token_usage=usage,
	    details=LlmRatingDetails(summary=output.summary,
	                             categories=output.categories),
	)


SUCCESSFUL_BUILD = PerBuildRating(
    id="successful-build",
    name="Successful build",
    description="The generated project builds without errors.",
    category=RatingCategory.HIGH_IMPACT,
    score_reduction="50%",
    rate=_rate_build,
)

NO_RUNTIME_ERRORS = PerBuildRating(
    id="no-runtime-errors",
    name="No runtime errors",
    description="The app runs without console or runtime errors.",
    category=RatingCategory.HIGH_IMPACT,
    score_reduction="50%",
    rate=_rate_runtime_errors,
)

PASSING_TESTS = PerBuildRating(
    id="passing-tests",
    name="Passing tests",
    description="The project's tests pass.",
    category=RatingCategory.MEDIUM_IMPACT,
    score_reduction="30%",
    rate=_rate_tests,
)

NO_AXE_VIOLATIONS = PerBuildRating(
    id="no-axe-violations",
    name="No accessibility violations",
    description="Axe reports no accessibility violations.",
    category=RatingCategory.MEDIUM_IMPACT,
    score_reduction="20%",
    grouping_labels=["accessibility"],
    rate=_rate_axe,
)

BUILD_REPAIR_COUNT = PerBuildRating(
    id="build-repair-count",
    name="Few build repairs",
    description="The project built without needing repairs.",
    category=RatingCategory.MEDIUM_IMPACT,
    score_reduction="50%",
    rate=_rate_repair_count,
)

NO_TODO_COMMENTS = PerFileRating(
    id="no-todo-comments",
    name="No TODO comments",
    description="Generated files do not leave TODO or FIXME comments.",
    category=RatingCategory.LOW_IMPACT,
    score_reduction="100%",
    filter=PerFileRatingContentType.UNKNOWN,
    rate=_rate_todo_comments,
)

CODE_QUALITY = LlmBasedRating(
    id="code-quality",
    name="Code quality (auto-rated)",
    description="An auto-rater model judges the quality of the code.",
    category=RatingCategory.MEDIUM_IMPACT,
    score_reduction="30%",
    rate=_rate_code_quality,
)

VISUAL_APPEARANCE = LlmBasedRating(
    id="visual-appearance",
    name="Visual appearance (auto-rated)",
    description="An auto-rater model judges a screenshot of the app.",
    category=RatingCategory.LOW_IMPACT,
    score_reduction="50%",
    rate=_rate_visuals,
)

BUILT_IN_RATINGS: dict[str, Rating] = {
    r.id: r for r in (
        SUCCESSFUL_BUILD,
        NO_RUNTIME_ERRORS,
        PASSING_TESTS,
        NO_AXE_VIOLATIONS,
        BUILD_REPAIR_COUNT,
        NO_TODO_COMMENTS,
        CODE_QUALITY,
        VISUAL_APPEARANCE,
    )
}


def get_built_in_rating(rating_id: str) -> Rating | None:
	return BUILT_IN_RATINGS.get(rating_id)


__all__ = [
    "AutoRateOutput",
    "BUILT_IN_RATINGS",
    "get_built_in_rating",
    "get_coefficient",
    "MIN_RATING",
    "MAX_RATING",
    "SUCCESSFUL_BUILD",
    "NO_RUNTIME_ERRORS",
    "PASSING_TESTS",
    "NO_AXE_VIOLATIONS",
    "BUILD_REPAIR_COUNT",
    "NO_TODO_COMMENTS",
    "CODE_QUALITY",
    "VISUAL_APPEARANCE",
]
