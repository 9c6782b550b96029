"""
Request and response shapes exchanged with generation backends.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from webapp_eval.models.usage import Usage


class LlmResponseFile(BaseModel):
	"""A generated source file."""

	file_path: str = Field(..., description="Path relative to the project")
	code: str = Field(..., description="Full file content")


class LlmContextFile(BaseModel):
	"""An existing project file sent to the model as context."""

	relative_path: str
	content: str


class ToolLogEntry(BaseModel):
	"""One tool invocation performed by an agentic backend."""

	request: Any = None
	response: Any = None


class GenerationContext(BaseModel):
	"""Everything a backend needs to produce files for one step."""

	directory: str = Field(..., description="Project directory")
	system_instructions: str = Field("", description="System prompt")
	combined_prompt: str = Field(...,
	                             description="System prompt plus user prompt")
	executable_prompt: str = Field(..., description="Literal user prompt")


class LlmGenerateFilesRequest(BaseModel):
	context: GenerationContext
	model: str
	context_files: list[LlmContextFile] = Field(default_factory=list)


class LlmGenerateFilesResponse(BaseModel):
	files: list[LlmResponseFile] = Field(default_factory=list)
	reasoning: str = ""
	usage: Usage = Field(default_factory=Usage)
	tool_logs: list[ToolLogEntry] = Field(default_factory=list)


class LlmGenerateTextRequest(BaseModel):
	model: str
	prompt: str
	system_prompt: str | None = None


class LlmGenerateTextResponse(BaseModel):
	text: str
	usage: Usage = Field(default_factory=Usage)
	reasoning: str = ""


class LlmConstrainedRequest(BaseModel):
	"""Request for output validated against a pydantic schema."""

	model_config = ConfigDict(arbitrary_types_allowed=True)

	model: str
	prompt: str
	schema_type: type[BaseModel] = Field(
	    ..., description="pydantic model the output must validate against")
	system_prompt: str | None = None
	attachments: list[str] = Field(
	    default_factory=list, description="Paths of files (e.g. screenshots) to attach")


class LlmConstrainedResponse(BaseModel):
	model_config = ConfigDict(arbitrary_types_allowed=True)

	output: Any = Field(None, description="Validated schema instance or None")
	usage: Usage = Field(default_factory=Usage)
	reasoning: str = ""


__all__ = [
    "LlmResponseFile",
    "LlmContextFile",
    "ToolLogEntry",
    "GenerationContext",
    "LlmGenerateFilesRequest",
    "LlmGenerateFilesResponse",
    "LlmGenerateTextRequest",
    "LlmGenerateTextResponse",
    "LlmConstrainedRequest",
    "LlmConstrainedResponse",
]
