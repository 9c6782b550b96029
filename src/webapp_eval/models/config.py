from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_core.core_schema import ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

DEFAULT_MODEL = "claude-sonnet-4.5"
DEFAULT_AUTORATER_MODEL = "gpt-5-mini"
DEFAULT_SUMMARY_MODEL = "gpt-5-mini"


def load_env(env_file: str | Path | None = None) -> None:
	"""Load environment variables from an `.env` file if present."""
	env_path = Path(env_file) if env_file else Path(".env")
	if env_path.exists():
		load_dotenv(env_path)


class Config(BaseSettings):
	"""Runtime configuration loaded from environment variables."""

	model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

	model: str = Field(
	    DEFAULT_MODEL,
	    alias="WEBAPP_EVAL_MODEL",
	    description="Model used to generate code",
	)
	runner: str = Field(
	    "copilot",
	    alias="WEBAPP_EVAL_RUNNER",
	    description="Generation backend name",
	)
	autorater_model: str = Field(
	    DEFAULT_AUTORATER_MODEL,
	    alias="AUTORATER_MODEL",
	    description="Model used by model-based ratings",
	)
	summary_model: str = Field(
	    DEFAULT_SUMMARY_MODEL,
	    alias="SUMMARY_MODEL",
	    description="Model used for the AI report summary and analyses",
	)
	reports_root_dir: str = Field(
	    ".webapp-eval/reports",
	    alias="REPORTS_ROOT_DIR",
	    description="Directory receiving run reports",
	)
	llm_output_dir: str = Field(
	    "llm-output",
	    alias="LLM_OUTPUT_DIR",
	    description="Cache of generated files, reused in local mode",
	)
	prompt_timeout_retries: int = Field(
	    0,
	    alias="PROMPT_TIMEOUT_RETRIES",
	    description="Extra attempts for prompts that time out",
	)
	max_build_repair_attempts: int = Field(
	    1,
	    alias="MAX_BUILD_REPAIR_ATTEMPTS",
	    description="Build repair rounds per step",
	)
	max_test_repair_attempts: int = Field(
	    0,
	    alias="MAX_TEST_REPAIR_ATTEMPTS",
	    description="Test repair rounds per step",
	)
	cli_url: str | None = Field(
	    default=None,
	    alias="COPILOT_CLI_URL",
	    description=
	    "External Copilot CLI server URL. If unset, spawns native CLI via stdio.",
	)
	github_token: str | None = Field(
	    default=None,
	    alias="GITHUB_TOKEN",
	    description="GitHub token for the Copilot CLI",
	)
	log_level: str = Field("info", alias="LOG_LEVEL",
	                       description="Log level")
	debug: bool = Field(False, alias="DEBUG",
	                    description="Print stack traces for unexpected errors")
	ci: bool = Field(False, alias="CI",
	                 description="Running in CI; disables the live display")

	@field_validator("prompt_timeout_retries", "max_build_repair_attempts",
	                 "max_test_repair_attempts")
	@classmethod
	def validate_non_negative(cls, v: Any, info: "ValidationInfo") -> Any:
		if int(v) < 0:
			raise ValueError(f"{info.field_name} must be >= 0")
		return v

	@property
	def use_native_cli(self) -> bool:
		"""Return True when using native stdio mode (no external server)."""
		return not self.cli_url

	@property
	def reports_root(self) -> Path:
		return Path(self.reports_root_dir)


__all__ = [
    "Config",
    "load_env",
    "DEFAULT_MODEL",
    "DEFAULT_AUTORATER_MODEL",
    "DEFAULT_SUMMARY_MODEL",
]
