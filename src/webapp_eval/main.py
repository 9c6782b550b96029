from __future__ import annotations

import asyncio
import signal
import sys
import traceback
from typing import List, Optional

import typer
from typer.main import get_command

from webapp_eval.core.runner import run_assessment
from webapp_eval.models.assessment_config import AssessmentConfig
from webapp_eval.models.config import Config, load_env
from webapp_eval.models.run_info import RunInfo
from webapp_eval.reporting.report_logging import (
    print_run_summary,
    write_report_to_disk,
)
from webapp_eval.ui.progress import create_progress_logger
from webapp_eval.utils.cancellation import CancellationToken
from webapp_eval.utils.errors import UserFacingError
from webapp_eval.utils.logging import configure_logging
from webapp_eval.utils.shared import PROCESS_CACHE

cli = typer.Typer(add_completion=False, no_args_is_help=True)

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@cli.callback()
def root() -> None:
	"""
	Evaluate code-generation agents on web app prompts.
	"""
	return None


def _parse_concurrency(value: str | None, option: str) -> int | str | None:
	if value is None or value == "auto":
		return value
	try:
		parsed = int(value)
	except ValueError:
		raise typer.BadParameter(f"must be a number or 'auto', got {value!r}",
		                         param_hint=option)
	if parsed < 1:
		raise typer.BadParameter("must be at least 1", param_hint=option)
	return parsed


async def _run_with_signals(options: AssessmentConfig, progress,
                            config: Config) -> RunInfo:
	"""Run the assessment; SIGINT/SIGTERM cancel the abort token."""
	loop = asyncio.get_running_loop()
	token = options.abort_token
	installed = []
	for sig in _SIGNALS:
		try:
			loop.add_signal_handler(sig, token.cancel,
			                        f"received {sig.name}")
			installed.append(sig)
		except (NotImplementedError, RuntimeError):
			pass
	try:
		return await run_assessment(options, progress, settings=config)
	finally:
		for sig in installed:
			loop.remove_signal_handler(sig)
		await PROCESS_CACHE.close()


def eval_impl(config: Config, **overrides) -> RunInfo:
	"""
	Run an evaluation and report it.

	Builds the run options from settings plus CLI overrides, runs the
	assessment with a live or text progress display, prints the summary
	and writes the report JSON below the reports root.

	Parameters:
		config: Runtime settings.
		overrides: Option values from the command line; None keeps the
			settings-derived default.

	Returns:
		The RunInfo of the run.
	"""
	options = AssessmentConfig.from_settings(
	    config, abort_token=CancellationToken("abort"), **overrides)
	progress = create_progress_logger(options.logging)
	typer.echo(f"Running with model={options.model}, runner={options.runner}, "
	           f"environment={options.environment}, limit={options.limit}, "
	           f"concurrency={options.concurrency}")
	run_info = asyncio.run(_run_with_signals(options, progress, config))
	print_run_summary(run_info)
	path = write_report_to_disk(run_info, config.reports_root)
	typer.echo(f"Report written to {path}")
	return run_info


@cli.command("eval")
def eval_command(
    env: str = typer.Option(..., "--env", "-e",
                            help="Path to the environment config"),
    runner: Optional[str] = typer.Option(None, "--runner",
                                         help="Generation backend"),
    model: Optional[str] = typer.Option(None, "--model",
                                        help="Model generating the code"),
    local: bool = typer.Option(
        False, "--local", help="Reuse previously generated output from disk"),
    limit: Optional[int] = typer.Option(None, "--limit", min=1,
                                        help="Maximum number of prompts"),
    concurrency: Optional[str] = typer.Option(
        None, "--concurrency", help="Concurrent evaluations, or 'auto'"),
    build_concurrency: Optional[str] = typer.Option(
        None, "--build-concurrency",
        help="Concurrent builds and tests, or 'auto'"),
    output_directory: Optional[str] = typer.Option(
        None, "--output-directory", help="Keep generated projects here"),
    prompt_filter: Optional[str] = typer.Option(
        None, "--prompt-filter", help="Only run prompts whose name contains this"),
    report_name: Optional[str] = typer.Option(None, "--report-name",
                                              help="Name of the report"),
    rag_endpoint: Optional[str] = typer.Option(
        None, "--rag-endpoint",
        help="Retrieval URL; PROMPT is replaced by the user prompt"),
    labels: Optional[List[str]] = typer.Option(
        None, "--label", help="Label attached to the report (repeatable)"),
    skip_screenshots: bool = typer.Option(False, "--skip-screenshots"),
    skip_axe_testing: bool = typer.Option(False, "--skip-axe-testing"),
    enable_user_journey_testing: bool = typer.Option(
        False, "--enable-user-journey-testing"),
    skip_ai_summary: bool = typer.Option(False, "--skip-ai-summary"),
    autorater_model: Optional[str] = typer.Option(
        None, "--autorater-model", help="Model used by model-based ratings"),
    max_build_repair_attempts: Optional[int] = typer.Option(
        None, "--max-build-repair-attempts", min=0),
    max_axe_repair_attempts: Optional[int] = typer.Option(
        None, "--max-axe-repair-attempts", min=0),
    max_test_repair_attempts: Optional[int] = typer.Option(
        None, "--max-test-repair-attempts", min=0),
    prompt_timeout_retries: Optional[int] = typer.Option(
        None, "--prompt-timeout-retries", min=0),
    start_mcp: bool = typer.Option(False, "--start-mcp",
                                   help="Start the environment's MCP servers"),
    logging: Optional[str] = typer.Option(
        None, "--logging", help="Progress display: text-only or dynamic"),
) -> None:
	"""
	Evaluate an environment's prompts and write a report.
	"""
	load_env()
	config = Config()
	configure_logging(config.log_level)
	try:
		eval_impl(
		    config,
		    environment=env,
		    runner=runner,
		    model=model,
		    local_mode=local or None,
		    limit=limit,
		    concurrency=_parse_concurrency(concurrency, "--concurrency"),
		    build_concurrency=_parse_concurrency(build_concurrency,
		                                         "--build-concurrency"),
		    output_directory=output_directory,
		    prompt_filter=prompt_filter,
		    report_name=report_name,
		    rag_endpoint=rag_endpoint,
		    labels=labels or None,
		    skip_screenshots=skip_screenshots or None,
		    skip_axe_testing=skip_axe_testing or None,
		    enable_user_journey_testing=enable_user_journey_testing or None,
		    skip_ai_summary=skip_ai_summary or None,
		    autorater_model=autorater_model,
		    max_build_repair_attempts=max_build_repair_attempts,
		    max_axe_repair_attempts=max_axe_repair_attempts,
		    max_test_repair_attempts=max_test_repair_attempts,
		    prompt_timeout_retries=prompt_timeout_retries,
		    start_mcp=start_mcp or None,
		    logging=logging,
		)
	except UserFacingError as exc:
		typer.secho(str(exc), fg=typer.colors.RED, err=True)
		raise typer.Exit(code=1)
	except (typer.Exit, typer.BadParameter):
		raise
	except Exception:
		typer.secho(
		    "An unexpected error occurred. Set DEBUG=1 to print the stack "
		    "trace.",
		    fg=typer.colors.RED,
		    err=True,
		)
		if config.debug:
			typer.echo(traceback.format_exc(), err=True)
		raise typer.Exit(code=1)


def entrypoint(argv=None, *, standalone_mode: bool = True):
	"""
	Typer entrypoint that defaults to `eval` when appropriate.

	Allows calling 'webapp-eval --env env.yaml' without explicitly
	specifying the 'eval' subcommand.

	Parameters:
		argv: Command-line arguments. Defaults to sys.argv[1:].
		standalone_mode: If True, Click handles exit codes.

	Returns:
		Result of the Click application main invocation.
	"""
	args = sys.argv[1:] if argv is None else list(argv)

	_click_app = get_command(cli)
	commands = getattr(_click_app, "commands", {}).keys()
	if args and args[0] not in commands and args[0] not in ("--help", "-h"):
		args = ["eval"] + args
	return _click_app.main(
	    args=args,
	    prog_name="webapp-eval",
	    standalone_mode=standalone_mode,
	)


if __name__ == "__main__":
	entrypoint()
