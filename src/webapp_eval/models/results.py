"""
Per-attempt and per-prompt evaluation results.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from webapp_eval.models.llm import LlmResponseFile, ToolLogEntry
from webapp_eval.models.usage import Usage


class BuildResultStatus(str, Enum):
	SUCCESS = "success"
	ERROR = "error"


class BuildResult(BaseModel):
	status: BuildResultStatus
	message: str = ""

	@property
	def succeeded(self) -> bool:
		return self.status == BuildResultStatus.SUCCESS


class ServeTestingResult(BaseModel):
	"""Outcome of serving the app and probing it in a browser."""

	runtime_errors: list[str] = Field(default_factory=list)
	axe_violations: list[dict[str, Any]] = Field(default_factory=list)
	screenshot_path: str | None = None
	error_message: str | None = Field(
	    None, description="Set when the app could not be served at all")


class TestExecutionResult(BaseModel):
	__test__ = False  # not a pytest class

	passed: bool
	output: str = ""


class AttemptDetails(BaseModel):
	"""One generation or repair round inside a job."""

	attempt: int
	output_files: list[LlmResponseFile] = Field(default_factory=list)
	usage: Usage | None = None
	reasoning: str = ""
	build_result: BuildResult | None = None
	serve_testing_result: ServeTestingResult | None = None
	test_result: TestExecutionResult | None = None


class BuildAndTestAttempt(BaseModel):
	"""Final state of a build/test/repair loop."""

	output_files: list[LlmResponseFile]
	build_result: BuildResult
	serve_testing_result: ServeTestingResult | None = None
	test_result: TestExecutionResult | None = None
	repair_attempts: int = 0
	axe_repair_attempts: int = 0
	test_repair_attempts: int = 0


class IndividualAssessment(BaseModel):
	state: Literal["executed"] = "executed"
	id: str
	name: str
	description: str = ""
	category: str
	grouping_labels: list[str] = Field(default_factory=list)
	points_reduction: float = 0
	success_percentage: float = Field(..., ge=0, le=1)
	message: str | None = None


class SkippedIndividualAssessment(BaseModel):
	state: Literal["skipped"] = "skipped"
	id: str
	name: str
	description: str = ""
	category: str
	grouping_labels: list[str] = Field(default_factory=list)
	message: str


AnyAssessment = Union[IndividualAssessment, SkippedIndividualAssessment]


class AssessmentCategory(BaseModel):
	id: str
	name: str
	points: float
	max_points: float
	assessments: list[AnyAssessment] = Field(default_factory=list)


class CodeAssessmentScore(BaseModel):
	total_points: float
	max_overall_points: float
	categories: list[AssessmentCategory] = Field(default_factory=list)
	token_usage: Usage | None = None


class UserJourney(BaseModel):
	name: str
	steps: list[str] = Field(default_factory=list)


class UserJourneysResult(BaseModel):
	result: list[UserJourney] = Field(default_factory=list)
	usage: Usage = Field(default_factory=Usage)


class PromptIdentity(BaseModel):
	"""Persistable part of a prompt definition."""

	name: str
	prompt: str


class AssessmentResult(BaseModel):
	"""Terminal record for one prompt step. Immutable once built."""

	model_config = ConfigDict(frozen=True)

	prompt_def: PromptIdentity
	output_files: list[LlmResponseFile]
	final_attempt: BuildAndTestAttempt
	score: CodeAssessmentScore
	repair_attempts: int = 0
	axe_repair_attempts: int = 0
	test_repair_attempts: int = 0
	attempt_details: list[AttemptDetails] = Field(default_factory=list)
	user_journeys: UserJourneysResult | None = None
	tool_logs: list[ToolLogEntry] = Field(default_factory=list)
	test_result: TestExecutionResult | None = None


__all__ = [
    "BuildResultStatus",
    "BuildResult",
    "ServeTestingResult",
    "TestExecutionResult",
    "AttemptDetails",
    "BuildAndTestAttempt",
    "IndividualAssessment",
    "SkippedIndividualAssessment",
    "AnyAssessment",
    "AssessmentCategory",
    "CodeAssessmentScore",
    "UserJourney",
    "UserJourneysResult",
    "PromptIdentity",
    "AssessmentResult",
]
