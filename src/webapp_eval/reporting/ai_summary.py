"""
Model-written report summaries.

`summarize_report_with_ai` produces the run's overall summary;
`chat_with_report_ai` answers an environment's custom analysis prompt
over a filtered view of the results.
"""

from __future__ import annotations

from dataclasses import dataclass

from webapp_eval.loaders.prompts import load_prompt
from webapp_eval.models.environment_config import (
    RatingContextFilter,
    ReportContextFilter,
)
from webapp_eval.models.llm import LlmGenerateTextRequest
from webapp_eval.models.results import AssessmentResult, IndividualAssessment
from webapp_eval.models.usage import Usage
from webapp_eval.utils.cancellation import CancellationToken
from webapp_eval.utils.protocols import LlmRunner


@dataclass
class AiSummaryResult:
	text: str
	usage: Usage


def _is_perfect(result: AssessmentResult) -> bool:
	return result.score.total_points >= result.score.max_overall_points


def serialize_results(
    results: list[AssessmentResult],
    reports_filter: ReportContextFilter = ReportContextFilter.ALL_REPORTS,
    ratings_filter: RatingContextFilter = RatingContextFilter.ALL_RATINGS,
) -> str:
	"""
	Render results as compact markdown for a model to read.

	Parameters:
		results: Results to include.
		reports_filter: Drop fully-scored results with NON_PERFECT_REPORTS.
		ratings_filter: Drop fully-passed ratings with NON_PERFECT_RATINGS.

	Returns:
		Markdown text, one section per result.
	"""
	sections = []
	for result in results:
		if (reports_filter == ReportContextFilter.NON_PERFECT_REPORTS and
		    _is_perfect(result)):
			continue
		score = result.score
		lines = [
		    f"## {result.prompt_def.name}",
		    f"Score: {score.total_points:g}/{score.max_overall_points:g}",
		    f"Build: {result.final_attempt.build_result.status.value}; "
		    f"repair attempts: {result.repair_attempts}",
		]
		for category in score.categories:
			for assessment in category.assessments:
				executed = isinstance(assessment, IndividualAssessment)
				if (ratings_filter == RatingContextFilter.NON_PERFECT_RATINGS and
				    (not executed or assessment.success_percentage >= 1)):
					continue
				if executed:
					outcome = f"{assessment.success_percentage:.0%}"
				else:
					outcome = "skipped"
				line = f"- {assessment.name} [{category.name}]: {outcome}"
				if assessment.message:
					line += f" ({assessment.message.splitlines()[0][:300]})"
				lines.append(line)
		sections.append("\n".join(lines))
	return "\n\n".join(sections)


async def summarize_report_with_ai(
    llm: LlmRunner,
    model: str,
    results: list[AssessmentResult],
    token: CancellationToken | None = None,
) -> AiSummaryResult:
	"""Write an overall summary of a run's results."""
	prompt = load_prompt("report_summary.md",
	                     REPORTS=serialize_results(results),
	                     COUNT=str(len(results)))
	response = await llm.generate_text(
	    LlmGenerateTextRequest(model=model, prompt=prompt), token)
	return AiSummaryResult(text=response.text, usage=response.usage)


async def chat_with_report_ai(
    llm: LlmRunner,
    question: str,
    model: str,
    results: list[AssessmentResult],
    reports_filter: ReportContextFilter,
    ratings_filter: RatingContextFilter,
    token: CancellationToken | None = None,
) -> AiSummaryResult:
	"""Answer `question` about the (filtered) results."""
	prompt = load_prompt(
	    "report_chat.md",
	    QUESTION=question,
	    REPORTS=serialize_results(results, reports_filter, ratings_filter),
	)
	response = await llm.generate_text(
	    LlmGenerateTextRequest(model=model, prompt=prompt), token)
	return AiSummaryResult(text=response.text, usage=response.usage)


__all__ = [
    "AiSummaryResult",
    "serialize_results",
    "summarize_report_with_ai",
    "chat_with_report_ai",
]
