"""
User-journey generation.

Asks a model for the main flows a user would exercise in the generated
app. The journeys are stored with the step's result and can drive
browser-level testing.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from webapp_eval.loaders.prompts import load_prompt
from webapp_eval.models.llm import LlmConstrainedRequest, LlmResponseFile
from webapp_eval.models.results import UserJourney, UserJourneysResult
from webapp_eval.utils.cancellation import CancellationToken
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.protocols import LlmRunner

logger = get_logger(__name__)

_MAX_FILE_CHARS = 10_000


class _UserJourneysSchema(BaseModel):
	journeys: list[UserJourney] = Field(
	    default_factory=list,
	    description="Most important user journeys, each with ordered steps")


async def generate_user_journeys_for_app(
    llm: LlmRunner,
    app_name: str,
    app_prompt: str,
    files: list[LlmResponseFile],
    model: str,
    token: CancellationToken,
) -> UserJourneysResult:
	"""
	Generate user journeys for an app.

	Parameters:
		llm: Runner producing constrained output.
		app_name: Prompt name, used in logs.
		app_prompt: The prompt the app was generated from.
		files: Generated files.
		model: Model to ask.
		token: Cancellation token.

	Returns:
		The journeys and the usage spent producing them. An unusable reply
		yields an empty journey list.
	"""
	sources = "\n\n".join(
	    f"### {f.file_path}\n```\n{f.code[:_MAX_FILE_CHARS]}\n```"
	    for f in files)
	response = await llm.generate_constrained(
	    LlmConstrainedRequest(
	        model=model,
	        prompt=load_prompt("user_journeys.md",
	                           APP_PROMPT=app_prompt,
	                           FILES=sources),
	        schema_type=_UserJourneysSchema,
	    ),
	    token,
	)
	if response.output is None:
		logger.warning("no user journeys generated for %s", app_name)
		return UserJourneysResult(usage=response.usage)
	return UserJourneysResult(result=response.output.journeys,
	                          usage=response.usage)


__all__ = ["generate_user_journeys_for_app"]
