"""
Run summary assembly.
"""

from __future__ import annotations

from webapp_eval.models.results import AssessmentResult
from webapp_eval.models.run_info import (
    AiAnalysis,
    CompletionStats,
    Frameworks,
    RunSummary,
)
from webapp_eval.models.usage import Usage, aggregate
from webapp_eval.reporting.ai_summary import (
    chat_with_report_ai,
    summarize_report_with_ai,
)
from webapp_eval.utils.cancellation import CancellationToken
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.protocols import LlmRunner

logger = get_logger(__name__)


def total_usage(results: list[AssessmentResult]) -> Usage:
	"""Sum rating, generation, repair and journey usage across results."""
	usages: list[Usage | None] = []
	for result in results:
		usages.append(result.score.token_usage)
		usages.extend(d.usage for d in result.attempt_details)
		if result.user_journeys is not None:
			usages.append(result.user_journeys.usage)
	return aggregate(usages)


def _log_failure(what: str, exc: Exception) -> None:
	logger.error("Failed to generate %s: %s", what, exc)
	logger.debug("%s failure", what, exc_info=True)


async def prepare_summary(
    *,
    env,
    llm: LlmRunner | None,
    model: str,
    summary_model: str,
    results: list[AssessmentResult],
    completion_stats: CompletionStats,
    skip_ai_summary: bool = False,
    token: CancellationToken | None = None,
) -> RunSummary:
	"""
	Build the run summary.

	AI summary and analysis failures are logged and leave the
	corresponding field empty; they never fail the run.

	Parameters:
		env: The run's Environment.
		llm: Runner for AI summaries; None skips them.
		model: Generation model of the run.
		summary_model: Default model for summaries and analyses.
		results: Sorted results.
		completion_stats: Prompt counts and failures.
		skip_ai_summary: Skip the overall AI summary.
		token: Cancellation token.

	Returns:
		The RunSummary.
	"""
	ai_summary: str | None = None
	analyses: list[AiAnalysis] = []

	if llm is not None and results:
		if not skip_ai_summary:
			try:
				summary = await summarize_report_with_ai(llm, summary_model,
				                                         results, token)
				ai_summary = summary.text
			except Exception as exc:
				_log_failure("AI summary", exc)
		for analysis in env.analysis_prompts:
			try:
				answer = await chat_with_report_ai(
				    llm,
				    analysis.prompt,
				    analysis.model or summary_model,
				    results,
				    analysis.reports_filter,
				    analysis.ratings_filter,
				    token,
				)
				analyses.append(AiAnalysis(name=analysis.name,
				                           summary=answer.text))
			except Exception as exc:
				_log_failure(f"analysis '{analysis.name}'", exc)

	return RunSummary(
	    model=model,
	    environment_id=env.id,
	    display_name=env.display_name,
	    framework=Frameworks(
	        full_stack_framework=env.full_stack_framework,
	        client_side_framework=env.client_side_framework,
	    ),
	    ai_summary=ai_summary,
	    additional_ai_analysis=analyses,
	    completion_stats=completion_stats,
	    usage=total_usage(results),
	    runner=await env.executor.get_executor_info(),
	    rating_hash=env.rating_hash,
	)


__all__ = ["prepare_summary", "total_usage"]
