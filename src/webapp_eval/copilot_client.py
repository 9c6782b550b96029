"""
Copilot client factory module.

Creates CopilotClient instances for the configured connection mode:
an external CLI server when `COPILOT_CLI_URL` is set, otherwise a
native CLI spawned over stdio.
"""

from __future__ import annotations

from typing import Any

from copilot import CopilotClient
from webapp_eval.models.config import Config

# The SDK accepts the CLI's level names; "warning" is spelled "warn" there.
_SDK_LOG_LEVELS = {"warning": "warn", "critical": "error"}


def _sdk_log_level(level: str) -> str:
	level = level.lower()
	return _SDK_LOG_LEVELS.get(level, level)


def create_client(config: Config) -> CopilotClient:
	"""Factory for CopilotClient with configured connection mode."""
	log_level = _sdk_log_level(config.log_level)
	if config.cli_url:
		return CopilotClient({
		    "cli_url": config.cli_url,
		    "log_level": log_level,
		})

	opts: dict[str, Any] = {"log_level": log_level}
	if config.github_token:
		opts["github_token"] = config.github_token
	return CopilotClient(opts)


__all__ = ["create_client"]
