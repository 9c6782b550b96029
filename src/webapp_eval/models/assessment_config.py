"""
Run-wide options for one assessment.

Built by the CLI from settings plus flag overrides, or directly by
library callers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webapp_eval.models.config import (
    Config,
    DEFAULT_AUTORATER_MODEL,
    DEFAULT_MODEL,
    DEFAULT_SUMMARY_MODEL,
)
from webapp_eval.utils.cancellation import CancellationToken

LoggingMode = Literal["text-only", "dynamic"]


class AssessmentConfig(BaseModel):
	"""Options controlling a single run."""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	environment: Any = Field(
	    ..., description="Path to an environment config, or an Environment")
	runner: str = "copilot"
	model: str = DEFAULT_MODEL
	local_mode: bool = False
	limit: int = Field(5, ge=1)
	concurrency: int | Literal["auto"] = "auto"
	build_concurrency: int | Literal["auto"] | None = None
	output_directory: str | None = None
	prompt_filter: str | None = None
	report_name: str = "report"
	rag_endpoint: str | None = None
	labels: list[str] = Field(default_factory=list)
	skip_screenshots: bool = False
	skip_axe_testing: bool = False
	enable_user_journey_testing: bool = False
	skip_ai_summary: bool = False
	autorater_model: str = DEFAULT_AUTORATER_MODEL
	summary_model: str = DEFAULT_SUMMARY_MODEL
	max_build_repair_attempts: int = Field(1, ge=0)
	max_axe_repair_attempts: int | None = Field(
	    None, ge=0, description="Defaults to max_test_repair_attempts")
	max_test_repair_attempts: int = Field(0, ge=0)
	prompt_timeout_retries: int = Field(0, ge=0)
	start_mcp: bool = False
	logging: LoggingMode = "dynamic"
	llm_output_dir: str = "llm-output"
	abort_token: CancellationToken | None = None

	@field_validator("concurrency", "build_concurrency")
	@classmethod
	def validate_concurrency(cls, v: Any) -> Any:
		if isinstance(v, int) and v < 1:
			raise ValueError("concurrency must be >= 1 or 'auto'")
		return v

	@property
	def axe_repair_ceiling(self) -> int:
		if self.max_axe_repair_attempts is None:
			return self.max_test_repair_attempts
		return self.max_axe_repair_attempts

	@property
	def llm_output_path(self) -> Path:
		return Path(self.llm_output_dir)

	@classmethod
	def from_settings(cls, config: Config, **overrides: Any) -> "AssessmentConfig":
		"""Build options from settings, applying non-None overrides.

		Parameters:
			config: Runtime settings.
			overrides: Explicit values (typically CLI flags). `None` values
				keep the settings-derived default.

		Returns:
			The merged AssessmentConfig.
		"""
		values: dict[str, Any] = {
		    "runner": config.runner,
		    "model": config.model,
		    "autorater_model": config.autorater_model,
		    "summary_model": config.summary_model,
		    "prompt_timeout_retries": config.prompt_timeout_retries,
		    "max_build_repair_attempts": config.max_build_repair_attempts,
		    "max_test_repair_attempts": config.max_test_repair_attempts,
		    "llm_output_dir": config.llm_output_dir,
		}
		if config.ci:
			values["logging"] = "text-only"
		values.update({k: v for k, v in overrides.items() if v is not None})
		return cls(**values)


__all__ = ["AssessmentConfig", "LoggingMode"]
