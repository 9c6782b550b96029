"""
Run-level report models.

`RunInfo` is the artifact handed to report consumers; its `version`
must stay at `REPORT_VERSION` unless a migration exists.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from webapp_eval.models.results import AssessmentResult
from webapp_eval.models.usage import Usage

REPORT_VERSION = 3

CLASSIFIED_MARKER = "Classified"


class FrameworkInfo(BaseModel):
	id: str
	display_name: str


class Frameworks(BaseModel):
	full_stack_framework: FrameworkInfo
	client_side_framework: FrameworkInfo


class ExecutorInfo(BaseModel):
	id: str
	display_name: str


class FailedPrompt(BaseModel):
	prompt_name: str
	error: str
	stack: str | None = None


class CompletionStats(BaseModel):
	all_prompts_count: int
	failed_prompts: list[FailedPrompt] = Field(default_factory=list)


class AiAnalysis(BaseModel):
	name: str
	summary: str


class RunSummary(BaseModel):
	model: str
	environment_id: str
	display_name: str
	framework: Frameworks
	ai_summary: str | None = None
	additional_ai_analysis: list[AiAnalysis] = Field(default_factory=list)
	completion_stats: CompletionStats
	usage: Usage = Field(default_factory=Usage)
	runner: ExecutorInfo
	rating_hash: str


class McpServerLogs(BaseModel):
	"""Output captured from MCP servers started for a run."""

	servers: list[str] = Field(default_factory=list)
	logs: str = ""


class RunDetails(BaseModel):
	summary: RunSummary
	timestamp: str
	report_name: str
	system_prompt_generation: str
	system_prompt_repair: str
	labels: list[str] = Field(default_factory=list)
	mcp: McpServerLogs | None = None


class RunInfo(BaseModel):
	id: str
	group: str
	version: int = REPORT_VERSION
	results: list[AssessmentResult] = Field(default_factory=list)
	details: RunDetails

	def to_json(self, **kwargs: Any) -> str:
		return self.model_dump_json(indent=2, **kwargs)


__all__ = [
    "REPORT_VERSION",
    "CLASSIFIED_MARKER",
    "FrameworkInfo",
    "Frameworks",
    "ExecutorInfo",
    "FailedPrompt",
    "CompletionStats",
    "AiAnalysis",
    "RunSummary",
    "McpServerLogs",
    "RunDetails",
    "RunInfo",
]
