import pytest
import typer

from webapp_eval.main import entrypoint
from webapp_eval.utils.errors import UserFacingError


def _make_fake_eval_impl():
	"""Return a (fake_eval_impl, seen_dict) pair for monkeypatching."""
	seen = {}

	def fake_eval_impl(config, **overrides):
		seen["config"] = config
		seen.update(overrides)

	return fake_eval_impl, seen


def test_cli_entrypoint_defaults_to_eval(monkeypatch):
	fake_eval_impl, seen = _make_fake_eval_impl()
	monkeypatch.setattr("webapp_eval.main.eval_impl", fake_eval_impl)
	entrypoint(
	    [
	        "--env",
	        "envs/angular.yaml",
	        "--model",
	        "gpt-5",
	        "--limit",
	        "3",
	        "--concurrency",
	        "4",
	        "--skip-ai-summary",
	    ],
	    standalone_mode=False,
	)
	assert seen["environment"] == "envs/angular.yaml"
	assert seen["model"] == "gpt-5"
	assert seen["limit"] == 3
	assert seen["concurrency"] == 4
	assert seen["skip_ai_summary"] is True
	assert seen["build_concurrency"] is None


def test_cli_unset_flags_are_passed_as_none(monkeypatch):
	"""Flags left off the command line keep the settings defaults."""
	fake_eval_impl, seen = _make_fake_eval_impl()
	monkeypatch.setattr("webapp_eval.main.eval_impl", fake_eval_impl)
	entrypoint(["eval", "--env", "env.yaml"], standalone_mode=False)
	assert seen["environment"] == "env.yaml"
	for key in ("runner", "model", "local_mode", "limit", "labels",
	            "skip_screenshots", "start_mcp", "logging"):
		assert seen[key] is None, key


def test_cli_repeated_labels_and_auto_concurrency(monkeypatch):
	fake_eval_impl, seen = _make_fake_eval_impl()
	monkeypatch.setattr("webapp_eval.main.eval_impl", fake_eval_impl)
	entrypoint(
	    [
	        "eval",
	        "-e",
	        "env.yaml",
	        "--label",
	        "nightly",
	        "--label",
	        "ci",
	        "--concurrency",
	        "auto",
	        "--build-concurrency",
	        "2",
	        "--local",
	    ],
	    standalone_mode=False,
	)
	assert seen["labels"] == ["nightly", "ci"]
	assert seen["concurrency"] == "auto"
	assert seen["build_concurrency"] == 2
	assert seen["local_mode"] is True


def test_cli_rejects_invalid_concurrency(monkeypatch):
	fake_eval_impl, _ = _make_fake_eval_impl()
	monkeypatch.setattr("webapp_eval.main.eval_impl", fake_eval_impl)
	with pytest.raises(typer.BadParameter):
		entrypoint(["--env", "env.yaml", "--concurrency", "0"],
		           standalone_mode=False)
	with pytest.raises(typer.BadParameter):
		entrypoint(["--env", "env.yaml", "--concurrency", "many"],
		           standalone_mode=False)


def test_cli_user_facing_error_exits_with_one(monkeypatch, capsys):
	"""Known errors print their message and exit with code 1."""

	def failing_eval_impl(config, **overrides):
		raise UserFacingError("No prompts have been configured")

	monkeypatch.setattr("webapp_eval.main.eval_impl", failing_eval_impl)
	code = entrypoint(["--env", "env.yaml"], standalone_mode=False)
	assert code == 1
	assert "No prompts have been configured" in capsys.readouterr().err


def test_cli_unexpected_error_hides_trace_without_debug(monkeypatch, capsys):
	monkeypatch.delenv("DEBUG", raising=False)

	def crashing_eval_impl(config, **overrides):
		raise RuntimeError("boom")

	monkeypatch.setattr("webapp_eval.main.eval_impl", crashing_eval_impl)
	code = entrypoint(["--env", "env.yaml"], standalone_mode=False)
	err = capsys.readouterr().err
	assert code == 1
	assert "An unexpected error occurred" in err
	assert "Traceback" not in err


def test_cli_unexpected_error_prints_trace_with_debug(monkeypatch, capsys):
	monkeypatch.setenv("DEBUG", "1")

	def crashing_eval_impl(config, **overrides):
		raise RuntimeError("boom")

	monkeypatch.setattr("webapp_eval.main.eval_impl", crashing_eval_impl)
	code = entrypoint(["--env", "env.yaml"], standalone_mode=False)
	err = capsys.readouterr().err
	assert code == 1
	assert "RuntimeError: boom" in err


def test_cli_entrypoint_help_does_not_crash():
	"""--help should exit cleanly (SystemExit with code 0)."""
	with pytest.raises(SystemExit) as exc_info:
		entrypoint(["--help"], standalone_mode=True)
	assert exc_info.value.code == 0
