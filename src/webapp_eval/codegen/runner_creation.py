"""
Generation backend registry.

Backends are identified by a closed set of names and imported only when
requested, so unused backends (and their SDKs) are never loaded.
"""

from __future__ import annotations

import importlib
from typing import Literal, get_args

from webapp_eval.models.config import Config
from webapp_eval.utils.errors import UserFacingError
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.protocols import LlmRunner

logger = get_logger(__name__)

RunnerName = Literal["copilot", "noop-unimplemented"]

RUNNER_NAMES: tuple[str, ...] = get_args(RunnerName)

# name -> (module, class, whether the constructor takes the settings)
_RUNNERS: dict[str, tuple[str, str, bool]] = {
    "copilot": ("webapp_eval.codegen.copilot_runner", "CopilotRunner", True),
    "noop-unimplemented":
        ("webapp_eval.codegen.noop_runner", "NoopUnimplementedRunner", False),
}


def get_runner_by_name(name: str, config: Config | None = None) -> LlmRunner:
	"""
	Construct a generation backend by name.

	Parameters:
		name: One of `RUNNER_NAMES`.
		config: Runtime settings forwarded to backends that need them.

	Returns:
		A new runner instance.

	Raises:
		UserFacingError: If the name is unknown.
	"""
	if name not in _RUNNERS:
		raise UserFacingError(f"Unsupported runner {name}. Supported runners: "
		                      f"{', '.join(RUNNER_NAMES)}")
	module_name, class_name, takes_config = _RUNNERS[name]
	logger.debug("loading runner %s from %s", name, module_name)
	cls = getattr(importlib.import_module(module_name), class_name)
	return cls(config) if takes_config else cls()


__all__ = ["RunnerName", "RUNNER_NAMES", "get_runner_by_name"]
