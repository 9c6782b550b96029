"""
Prompt declarations and resolved prompt definitions.

Declarations (`EvalPrompt`, `MultiStepPrompt`, `PromptFileEntry`, or a
bare glob string) are what an environment config lists. The environment
resolves them into `PromptDefinition` / `MultiStepPromptDefinition`
objects that jobs execute.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from webapp_eval.ratings.rating_types import Rating

SystemPromptType = Literal["generation", "editing"]


class PromptDefinition(BaseModel):
	"""A single executable prompt (or one step of a multi-step prompt)."""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	kind: Literal["single"] = "single"
	name: str
	prompt: str
	ratings: list[Rating] = Field(default_factory=list)
	context_file_patterns: list[str] = Field(default_factory=list)
	system_prompt_type: SystemPromptType = "generation"
	metadata: Any = None


class MultiStepPromptDefinition(BaseModel):
	"""Ordered steps that edit one shared project."""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	kind: Literal["multi-step"] = "multi-step"
	name: str
	steps: list[PromptDefinition]


RootPromptDefinition = Union[PromptDefinition, MultiStepPromptDefinition]


def leaf_prompts(root: RootPromptDefinition) -> list[PromptDefinition]:
	"""Return the executable steps of a root prompt, in order."""
	if isinstance(root, MultiStepPromptDefinition):
		return list(root.steps)
	return [root]


class PromptFileEntry(BaseModel):
	"""Glob of prompt files with an optional shared name and extra ratings."""

	model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

	path: str
	name: str | None = None
	ratings: list[Rating | str] = Field(default_factory=list)


class EvalPrompt(BaseModel):
	"""A prompt whose text is given inline instead of in a file."""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	name: str
	text: str
	extra_ratings: list[Rating | str] = Field(default_factory=list)
	context_file_patterns: list[str] = Field(default_factory=list)
	metadata: Any = None


class MultiStepPrompt(BaseModel):
	"""A directory of `step-<n>` prompt files executed in order."""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	directory_path: str
	step_ratings: dict[str, list[Rating | str]] = Field(
	    default_factory=dict,
	    description="Extra ratings keyed by step file name")
	step_metadata: dict[str, Any] = Field(default_factory=dict)


PromptDeclaration = Union[str, PromptFileEntry, EvalPrompt, MultiStepPrompt]

__all__ = [
    "SystemPromptType",
    "PromptDefinition",
    "MultiStepPromptDefinition",
    "RootPromptDefinition",
    "leaf_prompts",
    "PromptFileEntry",
    "EvalPrompt",
    "MultiStepPrompt",
    "PromptDeclaration",
]
