"""
Rating definitions.

A rating is a named check with a category and a score reduction. The
three kinds differ in what they look at: per-build ratings see the build,
serve/test and test outcomes; per-file ratings see individual generated
files; model-based ratings ask an auto-rater model for a verdict.
"""

from __future__ import annotations

import re
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webapp_eval.models.llm import LlmResponseFile
from webapp_eval.models.results import (
    BuildResult,
    IndividualAssessment,
    ServeTestingResult,
    SkippedIndividualAssessment,
    TestExecutionResult,
)
from webapp_eval.models.usage import Usage

_SCORE_REDUCTION_RE = re.compile(r"^\d+(\.\d+)?%$")


def _normalize_score_reduction(v: Any) -> str:
	v = str(v).strip()
	if not _SCORE_REDUCTION_RE.match(v):
		raise ValueError(f"score_reduction must look like '25%', got {v!r}")
	return v


class RatingKind(IntEnum):
	PER_BUILD = 0
	PER_FILE = 1
	LLM_BASED = 2


class RatingState(IntEnum):
	EXECUTED = 0
	SKIPPED = 1


class RatingCategory(str, Enum):
	HIGH_IMPACT = "high-impact"
	MEDIUM_IMPACT = "medium-impact"
	LOW_IMPACT = "low-impact"


class PerFileRatingContentType(IntEnum):
	"""Kinds of source a per-file rating applies to."""

	TS = 0
	CSS = 1
	HTML = 2
	UNKNOWN = 3


RatingsResult = dict[str, Union[IndividualAssessment,
                                SkippedIndividualAssessment]]


class ExecutedRatingResult(BaseModel):
	state: Literal[RatingState.EXECUTED] = RatingState.EXECUTED
	coefficient: float = Field(..., ge=0, le=1)
	message: str | None = None


class SkippedRatingResult(BaseModel):
	state: Literal[RatingState.SKIPPED] = RatingState.SKIPPED
	message: str


class LlmRatingDetails(BaseModel):
	summary: str
	categories: list[dict[str, str]] = Field(default_factory=list)


class ExecutedLlmRatingResult(ExecutedRatingResult):
	token_usage: Usage = Field(default_factory=Usage)
	details: LlmRatingDetails | None = None


class PerFileRatingOutcome(BaseModel):
	rating: float = Field(..., ge=0, le=1)
	error_message: str


PerBuildRatingResult = Union[ExecutedRatingResult, SkippedRatingResult]
PerFileRatingResult = Union[float, PerFileRatingOutcome]
LlmBasedRatingResult = Union[ExecutedLlmRatingResult, SkippedRatingResult]


class PerBuildRatingContext(BaseModel):
	model_config = ConfigDict(arbitrary_types_allowed=True)

	build_result: BuildResult
	generated_files: list[LlmResponseFile]
	serve_result: ServeTestingResult | None = None
	repair_attempts: int = 0
	axe_repair_attempts: int = 0
	test_result: TestExecutionResult | None = None
	test_repair_attempts: int = 0
	ratings_result: RatingsResult = Field(default_factory=dict)
	prompt: Any = None


class PerFileRatingContext(BaseModel):
	model_config = ConfigDict(arbitrary_types_allowed=True)

	ratings_result: RatingsResult = Field(default_factory=dict)
	prompt: Any = None


class LlmBasedRatingContext(BaseModel):
	model_config = ConfigDict(arbitrary_types_allowed=True)

	environment: Any
	full_prompt_text: str
	current_prompt_def: Any
	llm: Any
	model: str
	output_files: list[LlmResponseFile]
	build_result: BuildResult
	serve_testing_result: ServeTestingResult | None = None
	repair_attempts: int = 0
	axe_repair_attempts: int = 0
	token: Any = None
	ratings_result: RatingsResult = Field(default_factory=dict)


class BaseRating(BaseModel):
	"""Fields shared by every rating kind."""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	id: str
	name: str
	description: str = ""
	category: RatingCategory
	score_reduction: str = Field(
	    ..., description="Share of the category's points at stake, e.g. '30%'")
	grouping_labels: list[str] = Field(default_factory=list)

	@field_validator("score_reduction", mode="before")
	@classmethod
	def validate_score_reduction(cls, v: Any) -> str:
		return _normalize_score_reduction(v)

	@property
	def score_reduction_fraction(self) -> float:
		return float(self.score_reduction.rstrip("%")) / 100


class PerBuildRating(BaseRating):
	kind: Literal[RatingKind.PER_BUILD] = RatingKind.PER_BUILD
	rate: Callable[[PerBuildRatingContext], PerBuildRatingResult]


class PerFileRatingFilter(BaseModel):
	model_config = ConfigDict(arbitrary_types_allowed=True)

	type: PerFileRatingContentType = PerFileRatingContentType.UNKNOWN
	pattern: re.Pattern | None = Field(
	    None, description="Content must match this pattern")
	path_pattern: re.Pattern | None = Field(
	    None, description="File path must match this pattern")


class PerFileRating(BaseRating):
	kind: Literal[RatingKind.PER_FILE] = RatingKind.PER_FILE
	rate: Callable[[str, str | None, PerFileRatingContext],
	               PerFileRatingResult | Awaitable[PerFileRatingResult]]
	filter: PerFileRatingContentType | PerFileRatingFilter = (
	    PerFileRatingContentType.UNKNOWN)


class LlmBasedRating(BaseRating):
	kind: Literal[RatingKind.LLM_BASED] = RatingKind.LLM_BASED
	rate: Callable[[LlmBasedRatingContext], Awaitable[LlmBasedRatingResult]]


Rating = Union[PerBuildRating, PerFileRating, LlmBasedRating]


class RatingOverride(BaseModel):
	"""Partial override applied to a configured rating by id."""

	model_config = ConfigDict(extra="forbid")

	category: RatingCategory | None = None
	score_reduction: str | None = None
	grouping_labels: list[str] | None = None

	@field_validator("score_reduction", mode="before")
	@classmethod
	def validate_score_reduction(cls, v: Any) -> str | None:
		if v is None:
			return v
		return _normalize_score_reduction(v)


class CategoryConfig(BaseModel):
	name: str
	max_points: float


class CategoryOverride(BaseModel):
	model_config = ConfigDict(extra="forbid")

	name: str | None = None
	max_points: float | None = None


__all__ = [
    "RatingKind",
    "RatingState",
    "RatingCategory",
    "PerFileRatingContentType",
    "RatingsResult",
    "ExecutedRatingResult",
    "SkippedRatingResult",
    "ExecutedLlmRatingResult",
    "LlmRatingDetails",
    "PerFileRatingOutcome",
    "PerBuildRatingResult",
    "PerFileRatingResult",
    "LlmBasedRatingResult",
    "PerBuildRatingContext",
    "PerFileRatingContext",
    "LlmBasedRatingContext",
    "BaseRating",
    "PerBuildRating",
    "PerFileRatingFilter",
    "PerFileRating",
    "LlmBasedRating",
    "Rating",
    "RatingOverride",
    "CategoryConfig",
    "CategoryOverride",
]
