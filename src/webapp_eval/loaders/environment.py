"""
Environment loader.

Environments are defined either in YAML (``*.yaml`` / ``*.yml``) or in a
Python module exposing a ``config`` object, which is needed for custom
ratings and augmentation hooks. Paths inside the definition are relative
to the file's directory.
"""

from __future__ import annotations

import importlib.util
from pathlib import Path
from typing import Any

import yaml

from webapp_eval.codegen.runner_creation import get_runner_by_name
from webapp_eval.core.environment import Environment
from webapp_eval.executors.local_executor import LocalExecutor
from webapp_eval.models.config import Config
from webapp_eval.models.environment_config import assert_is_environment_config
from webapp_eval.utils.errors import UserFacingError
from webapp_eval.utils.logging import get_logger

logger = get_logger(__name__)

YAML_SUFFIXES = {".yaml", ".yml"}


def _load_yaml(path: Path) -> Any:
	try:
		return yaml.safe_load(path.read_text(encoding="utf-8"))
	except yaml.YAMLError as exc:
		raise UserFacingError(
		    f"Could not parse environment file {path}: {exc}") from exc


def _load_python(path: Path) -> Any:
	spec = importlib.util.spec_from_file_location(
	    f"webapp_eval_environment_{path.stem}", path)
	if spec is None or spec.loader is None:
		raise UserFacingError(f"Cannot import environment module {path}")
	module = importlib.util.module_from_spec(spec)
	spec.loader.exec_module(module)
	if not hasattr(module, "config"):
		raise UserFacingError(
		    f"Environment module {path} must define a `config` object")
	return module.config


def load_environment(
    path: str | Path,
    runner_name: str,
    config: Config | None = None,
) -> Environment:
	"""
	Load and validate an environment definition.

	Parameters:
		path: Environment file.
		runner_name: Generation backend used by the default local
			executor and by prompt augmentation.
		config: Runtime settings forwarded to backends.

	Returns:
		The constructed Environment.

	Raises:
		UserFacingError: If the file is missing, unsupported or invalid.
	"""
	path = Path(path).resolve()
	if not path.is_file():
		raise UserFacingError(f"Environment file {path} does not exist")
	if path.suffix in YAML_SUFFIXES:
		raw = _load_yaml(path)
	elif path.suffix == ".py":
		raw = _load_python(path)
	else:
		raise UserFacingError(
		    f"Unsupported environment file {path}; expected YAML or Python")

	env_config = assert_is_environment_config(raw)
	root = path.parent
	executor = env_config.executor
	if executor is None:
		executor = LocalExecutor(
		    env_config.local_executor_config(),
		    get_runner_by_name(runner_name, config),
		    root,
		)
	logger.debug("loaded environment %s from %s", env_config.display_name,
	             path)
	return Environment(
	    root,
	    env_config,
	    executor,
	    augmentation_runner_factory=lambda: get_runner_by_name(
	        runner_name, config),
	)


__all__ = ["load_environment"]
