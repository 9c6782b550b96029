"""
Validated shape of an environment definition.

Environment definitions are authored as YAML or as Python modules that
expose a ``config`` object (Python is required for custom ratings,
hooks and custom executors). Either way the raw value is validated
here; validation failures surface as a `UserFacingError` that lists
every issue.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from webapp_eval.models.prompts import PromptDeclaration
from webapp_eval.ratings.rating_types import (
    CategoryOverride,
    Rating,
    RatingCategory,
    RatingOverride,
)
from webapp_eval.utils.errors import UserFacingError


class ReportContextFilter(str, Enum):
	ALL_REPORTS = "all-reports"
	NON_PERFECT_REPORTS = "non-perfect-reports"


class RatingContextFilter(str, Enum):
	ALL_RATINGS = "all-ratings"
	NON_PERFECT_RATINGS = "non-perfect-ratings"


class AnalysisPromptConfig(BaseModel):
	model_config = ConfigDict(extra="forbid")

	name: str
	path: str
	model: str | None = None
	reports_filter: ReportContextFilter | None = None
	ratings_filter: RatingContextFilter | None = None


class LocalExecutorConfig(BaseModel):
	"""Commands the local executor runs inside a project directory."""

	model_config = ConfigDict(extra="forbid")

	source_directory: str | None = Field(
	    None, description="Project template copied into every workspace")
	package_manager: str = "npm"
	install_command: str | None = None
	build_command: str = "npm run build"
	test_command: str | None = None
	runtime_check_command: str | None = Field(
	    None,
	    description=("Serves the app and prints a JSON object with "
	                 "runtime_errors, axe_violations and screenshot_path"))
	browser_install_command: str | None = None
	mcp_servers: list[str] = Field(
	    default_factory=list, description="Commands starting MCP servers")


_LOCAL_EXECUTOR_FIELDS = tuple(LocalExecutorConfig.model_fields)


class EnvironmentConfig(BaseModel):
	"""Raw environment configuration. Read it through `Environment`."""

	model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

	display_name: str
	id: str | None = None
	client_side_framework: str
	full_stack_framework: str | None = None
	ratings: list[Rating | str]
	rating_overrides: dict[str, RatingOverride] | None = None
	generation_system_prompt: str
	repair_system_prompt: str | None = None
	editing_system_prompt: str | None = None
	executable_prompts: list[PromptDeclaration]
	code_rating_prompt: str | None = None
	classify_prompts: bool = False
	prompt_timeout_minutes: float | None = Field(None, gt=0)
	category_overrides: dict[RatingCategory, CategoryOverride] | None = None
	expected_rating_hash: str | None = None
	analysis_prompts: list[AnalysisPromptConfig] = Field(default_factory=list)
	strict_step_numbering: bool = False
	augment_executable_prompt: Callable[..., Any] | None = Field(
	    None, description="async (PromptAugmentationContext) -> str")
	augment_generated_file: Callable[..., Any] | None = Field(
	    None, description="(LlmResponseFile) -> str")
	executor: Any = Field(
	    None, description="Custom executor; a local one is derived if unset")

	# Local executor settings may be given at the top level.
	source_directory: str | None = None
	package_manager: str | None = None
	install_command: str | None = None
	build_command: str | None = None
	test_command: str | None = None
	runtime_check_command: str | None = None
	browser_install_command: str | None = None
	mcp_servers: list[str] | None = None

	def local_executor_config(self) -> LocalExecutorConfig:
		"""Collect the top-level local executor fields that were set."""
		values = {
		    name: getattr(self, name)
		    for name in _LOCAL_EXECUTOR_FIELDS
		    if getattr(self, name) is not None
		}
		return LocalExecutorConfig(**values)


def format_validation_error(exc: ValidationError, prefix: str) -> str:
	"""Render every pydantic issue on its own line."""
	lines = [prefix]
	for err in exc.errors():
		loc = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
		lines.append(f"  - {loc}: {err.get('msg')}")
	return "\n".join(lines)


def assert_is_environment_config(value: Any) -> EnvironmentConfig:
	"""
	Validate a raw environment definition.

	Parameters:
		value: Mapping loaded from YAML, or an object exported by a
			Python environment module.

	Returns:
		The validated EnvironmentConfig.

	Raises:
		UserFacingError: If validation fails; lists every issue.
	"""
	if isinstance(value, EnvironmentConfig):
		return value
	try:
		return EnvironmentConfig.model_validate(value)
	except ValidationError as exc:
		raise UserFacingError(
		    format_validation_error(exc,
		                            "Environment parsing failed:")) from exc


__all__ = [
    "ReportContextFilter",
    "RatingContextFilter",
    "AnalysisPromptConfig",
    "LocalExecutorConfig",
    "EnvironmentConfig",
    "format_validation_error",
    "assert_is_environment_config",
]
