"""
Report console output and persistence.

Provides the run header logged before scheduling, the Rich summary
printed after a run, and writing `RunInfo` JSON below the reports root.
"""

from __future__ import annotations

from pathlib import Path

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from webapp_eval.models.assessment_config import AssessmentConfig
from webapp_eval.models.run_info import RunInfo
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.paths import ensure_within

logger = get_logger(__name__)

REPORT_FILE_NAME = "summary.json"


def log_report_header(env, options: AssessmentConfig, prompt_count: int) -> None:
	"""Log what the run is about to evaluate."""
	logger.info(
	    "Evaluating %d prompt(s) of environment '%s' (%s) with model=%s "
	    "runner=%s concurrency=%s local_mode=%s",
	    prompt_count,
	    env.display_name,
	    env.id,
	    options.model,
	    options.runner,
	    options.concurrency,
	    options.local_mode,
	)
	if options.labels:
		logger.info("Labels: %s", ", ".join(options.labels))


def _score_style(fraction: float) -> str:
	if fraction >= 0.85:
		return "green"
	if fraction >= 0.5:
		return "yellow"
	return "red"


def render_run_summary(run_info: RunInfo) -> Table:
	"""Render one row per result plus a totals row."""
	table = Table(show_header=True, expand=True, box=box.ROUNDED)
	table.add_column("Prompt")
	table.add_column("Build")
	table.add_column("Repairs")
	table.add_column("Score")

	total = 0.0
	max_total = 0.0
	for result in run_info.results:
		score = result.score
		total += score.total_points
		max_total += score.max_overall_points
		fraction = (score.total_points / score.max_overall_points
		            if score.max_overall_points else 0)
		build = result.final_attempt.build_result
		table.add_row(
		    result.prompt_def.name,
		    Text(build.status.value,
		         style="green" if build.succeeded else "red"),
		    f"{result.repair_attempts}/{result.axe_repair_attempts}/"
		    f"{result.test_repair_attempts}",
		    Text(f"{score.total_points:g}/{score.max_overall_points:g}",
		         style=_score_style(fraction)),
		)
	if run_info.results:
		table.add_row("total", "", "", f"{total:g}/{max_total:g}",
		              style="bold")
	return table


def print_run_summary(run_info: RunInfo, console: Console | None = None) -> None:
	"""Print results, failures, usage and the AI summary."""
	console = console or Console()
	summary = run_info.details.summary
	console.print(render_run_summary(run_info))
	for failed in summary.completion_stats.failed_prompts:
		console.print(
		    Text.assemble(("Failed: ", "red"),
		                  f"{failed.prompt_name}: {failed.error}"))
	usage = summary.usage
	console.print(f"Tokens: {usage.input_tokens} in, {usage.output_tokens} "
	              f"out, {usage.total_tokens} total")
	if summary.ai_summary:
		console.print(Text("\nAI summary", style="bold"))
		console.print(summary.ai_summary)
	for analysis in summary.additional_ai_analysis:
		console.print(Text(f"\n{analysis.name}", style="bold"))
		console.print(analysis.summary)


def report_path(reports_root: Path, run_info: RunInfo) -> Path:
	summary = run_info.details.summary
	return ensure_within(
	    reports_root,
	    reports_root / summary.environment_id / run_info.details.report_name /
	    REPORT_FILE_NAME,
	)


def write_report_to_disk(run_info: RunInfo, reports_root: Path | str) -> Path:
	"""
	Persist a run report.

	Parameters:
		run_info: The run report.
		reports_root: Root directory for reports.

	Returns:
		Path of the written file.
	"""
	path = report_path(Path(reports_root), run_info)
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(run_info.to_json(), encoding="utf-8")
	logger.info("report written to %s", path)
	return path


__all__ = [
    "REPORT_FILE_NAME",
    "log_report_header",
    "render_run_summary",
    "print_run_summary",
    "report_path",
    "write_report_to_disk",
]
