from rich.console import Console

from webapp_eval.models.prompts import PromptDefinition
from webapp_eval.models.results import (
    AssessmentResult,
    BuildAndTestAttempt,
    BuildResult,
    BuildResultStatus,
    CodeAssessmentScore,
    PromptIdentity,
)
from webapp_eval.ui.progress import (
    DynamicProgressLogger,
    NoopProgressLogger,
    TextProgressLogger,
    create_progress_logger,
)

PROMPT = PromptDefinition(name="todo", prompt="Build a todo app")


def _result(points):
	return AssessmentResult(
	    prompt_def=PromptIdentity(name="todo", prompt="Build a todo app"),
	    output_files=[],
	    final_attempt=BuildAndTestAttempt(
	        output_files=[],
	        build_result=BuildResult(status=BuildResultStatus.SUCCESS)),
	    score=CodeAssessmentScore(total_points=points, max_overall_points=100),
	)


def test_text_logger_prints_each_event():
	console = Console(record=True, width=200)
	progress = TextProgressLogger(console)
	progress.initialize(2)
	progress.log(PROMPT, "build", "Build failed, repairing", "attempt 1/1")
	progress.eval_finished(PROMPT, [_result(80)])
	progress.eval_finished(PROMPT, [])
	progress.finalize()
	text = console.export_text()
	assert "Evaluating 2 prompt(s)" in text
	assert "[todo] build: Build failed, repairing (attempt 1/1)" in text
	assert "[1/2] todo finished: 80/100 points" in text
	assert "[2/2] todo finished: no results" in text
	assert "All evaluations finished" in text


def test_dynamic_logger_tracks_rows():
	console = Console(record=True, width=200, force_terminal=False)
	progress = DynamicProgressLogger(console)
	progress.initialize(1)
	progress.log(PROMPT, "codegen", "x" * 300)
	row = progress.rows["todo"]
	assert row.status == "codegen"
	assert row.message == "x" * 120 + "..."
	progress.eval_finished(PROMPT, [_result(55)])
	assert row.status == "done"
	assert row.message == "55/100 points"
	assert progress.finished == 1
	progress.finalize()
	assert progress.live is None


def test_dynamic_logger_marks_failures():
	progress = DynamicProgressLogger(Console(record=True))
	progress.eval_finished(PROMPT, [])
	assert progress.rows["todo"].status == "failed"
	assert progress.rows["todo"].style == "red"


def test_create_progress_logger():
	assert isinstance(create_progress_logger("text-only"), TextProgressLogger)
	assert isinstance(create_progress_logger("dynamic"), DynamicProgressLogger)


def test_noop_logger_accepts_events():
	progress = NoopProgressLogger()
	progress.initialize(1)
	progress.log(PROMPT, "info", "ignored")
	progress.eval_finished(PROMPT, [])
	progress.finalize()
