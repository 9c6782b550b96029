"""
Evaluation environment.

An `Environment` is the validated, read-only description of one
evaluation target: the prompt catalog, the ratings and their categories,
the system prompts and the executor that builds and tests generated
projects. It also computes the rating hash used to detect scoring drift
between runs.
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx

from webapp_eval.loaders.prompt_templates import (
    RenderedPrompt,
    render_prompt_template,
)
from webapp_eval.models.environment_config import (
    EnvironmentConfig,
    RatingContextFilter,
    ReportContextFilter,
)
from webapp_eval.models.llm import LlmResponseFile
from webapp_eval.models.prompts import (
    EvalPrompt,
    MultiStepPrompt,
    MultiStepPromptDefinition,
    PromptDefinition,
    PromptFileEntry,
    RootPromptDefinition,
    SystemPromptType,
    leaf_prompts,
)
from webapp_eval.models.run_info import FrameworkInfo
from webapp_eval.ratings.built_in import get_built_in_rating
from webapp_eval.ratings.rating_types import (
    CategoryConfig,
    Rating,
    RatingCategory,
)
from webapp_eval.utils.errors import UserFacingError
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.protocols import Executor, LlmRunner
from webapp_eval.utils.shared import SharedFutureCache

logger = get_logger(__name__)

DEFAULT_REPAIR_PROMPT = (
    "Please fix the given errors and return the corrected code.")
DEFAULT_PROMPT_TIMEOUT_MINUTES = 10
RAG_PLACEHOLDER = "PROMPT"
RAG_TIMEOUT_SECONDS = 60

_FRAMEWORK_DISPLAY_NAMES = {
    "angular": "Angular",
    "next": "Next.js",
    "react": "React",
    "vue": "Vue.js",
    "svelte": "Svelte",
    "solid": "Solid.js",
}

_DEFAULT_CATEGORIES: dict[RatingCategory, tuple[str, float]] = {
    RatingCategory.HIGH_IMPACT: ("High Impact", 60),
    RatingCategory.MEDIUM_IMPACT: ("Medium Impact", 30),
    RatingCategory.LOW_IMPACT: ("Low Impact", 10),
}

_STEP_RE = re.compile(r"^step-(\d+)")


@dataclass
class AnalysisPrompt:
	name: str
	prompt: str
	model: str | None
	reports_filter: ReportContextFilter
	ratings_filter: RatingContextFilter


@dataclass
class PromptAugmentationContext:
	"""Argument passed to an environment's prompt augmentation hook."""

	prompt_def: PromptDefinition
	environment: "Environment"
	runner: LlmRunner


def generate_id(display_name: str) -> str | None:
	"""Derive a slug id from a display name, or None if nothing is left."""
	slug = re.sub(r"[^a-z0-9]+", "-", display_name.lower()).strip("-")
	return slug or None


def framework_info(framework_id: str, fallback: str | None = None) -> FrameworkInfo:
	return FrameworkInfo(
	    id=framework_id,
	    display_name=_FRAMEWORK_DISPLAY_NAMES.get(framework_id) or fallback or
	    framework_id,
	)


def compute_rating_hash(
    ratings: list[Rating],
    categories: dict[RatingCategory, CategoryConfig],
) -> str:
	"""
	Fingerprint a rating set.

	Each rating contributes ``category;max_points;id;score_reduction;labels``
	with its grouping labels sorted; the strings are sorted, joined with
	``|`` and SHA-256 hashed, so the result does not depend on rating order.

	Parameters:
		ratings: Resolved ratings.
		categories: Category configuration providing max points.

	Returns:
		Hex digest.
	"""
	parts: list[str] = []
	for rating in ratings:
		category = categories.get(rating.category)
		max_points = f"{category.max_points:g}" if category else ""
		labels = ",".join(sorted(rating.grouping_labels))
		parts.append(f"{rating.category.value};{max_points};{rating.id};"
		             f"{rating.score_reduction};{labels}")
	return hashlib.sha256("|".join(sorted(parts)).encode("utf-8")).hexdigest()


class Environment:
	"""A single prompt evaluation environment."""

	def __init__(
	    self,
	    root_path: str | Path,
	    config: EnvironmentConfig,
	    executor: Executor,
	    *,
	    augmentation_runner_factory: Callable[[], LlmRunner] | None = None,
	) -> None:
		"""
		Parameters:
			root_path: Directory the environment config lives in; prompt
				paths are relative to it.
			config: Validated configuration.
			executor: Execution collaborator for this environment.
			augmentation_runner_factory: Builds the runner handed to the
				prompt augmentation hook. Only called when a hook exists.

		Raises:
			UserFacingError: For an underivable id, unknown rating ids or
				overrides, or a rating hash mismatch.
		"""
		self.root_path = Path(root_path).resolve()
		self.config = config
		self.id = config.id or self._generate_id(config.display_name)
		self.display_name = config.display_name
		self.client_side_framework = framework_info(
		    config.client_side_framework)
		self.full_stack_framework = (framework_info(
		    config.full_stack_framework,
		    fallback=config.client_side_framework,
		) if config.full_stack_framework else
		                             self.client_side_framework.model_copy())
		self.code_rating_prompt_path = (self.root_path /
		                                config.code_rating_prompt
		                                if config.code_rating_prompt else None)
		self.classify_prompts = config.classify_prompts
		self.executor = executor
		self.prompt_timeout_minutes = config.prompt_timeout_minutes
		self.strict_step_numbering = config.strict_step_numbering
		self.rating_categories = self._get_rating_categories(config)
		self.ratings = self._resolve_ratings(config)
		self.rating_hash = compute_rating_hash(self.ratings,
		                                       self.rating_categories)
		self.analysis_prompts = self._resolve_analysis_prompts(config)
		self._augment_executable_prompt = config.augment_executable_prompt
		self._augment_generated_file = config.augment_generated_file
		self._augmentation_runner_factory = augmentation_runner_factory
		self._augmentation_runner: LlmRunner | None = None
		self._lazy = SharedFutureCache()
		self._validate_rating_hash(config)

	async def _memoized(self, key: str,
	                    factory: Callable[[], Awaitable[Any]]) -> Any:
		return await asyncio.shield(self._lazy.get_or_create(key, factory))

	async def executable_prompts(self) -> list[RootPromptDefinition]:
		"""Prompts to execute, resolved once per environment."""
		return await self._memoized("executable-prompts",
		                            self._resolve_executable_prompts)

	async def system_prompt_generation(self) -> str:
		return await self._memoized(
		    "system-prompt-generation",
		    lambda: self._render_system_prompt(self.config.
		                                       generation_system_prompt))

	async def system_prompt_repair(self) -> str:
		if not self.config.repair_system_prompt:
			return DEFAULT_REPAIR_PROMPT
		return await self._memoized(
		    "system-prompt-repair",
		    lambda: self._render_system_prompt(self.config.repair_system_prompt
		                                      ))

	async def system_prompt_editing(self) -> str:
		if not self.config.editing_system_prompt:
			return await self.system_prompt_generation()
		return await self._memoized(
		    "system-prompt-editing",
		    lambda: self._render_system_prompt(self.config.
		                                       editing_system_prompt))

	async def get_prompt(
	    self,
	    type: SystemPromptType,
	    user_prompt: str,
	    rag_endpoint: str | None = None,
	) -> str:
		"""
		Combine the phase's system prompt with a user prompt.

		With a RAG endpoint, the endpoint's response replaces the user
		prompt; the endpoint must contain a ``PROMPT`` placeholder which
		receives the url-encoded user prompt.

		Parameters:
			type: Which system prompt to use.
			user_prompt: Literal prompt text.
			rag_endpoint: Optional retrieval URL template.

		Returns:
			The full prompt text.

		Raises:
			UserFacingError: If the endpoint lacks the placeholder, cannot
				be reached or answers with a non-success status.
		"""
		system_prompt = (await self.system_prompt_generation() if type
		                 == "generation" else await self.system_prompt_editing())
		if not rag_endpoint:
			return "\n\n".join([system_prompt, user_prompt])

		if RAG_PLACEHOLDER not in rag_endpoint:
			raise UserFacingError(
			    f'The rag endpoint must include the "{RAG_PLACEHOLDER}" substring.'
			)
		url = rag_endpoint.replace(RAG_PLACEHOLDER, quote(user_prompt, safe=""))
		try:
			async with httpx.AsyncClient(timeout=RAG_TIMEOUT_SECONDS) as client:
				response = await client.get(url)
		except httpx.HTTPError as exc:
			raise UserFacingError(f"Failed to fetch from {url}: {exc}") from exc
		if not response.is_success:
			raise UserFacingError(
			    f"Failed to fetch from {url}: {response.reason_phrase}")
		return f"{system_prompt}\n\n{response.text}"

	def render_prompt(
	    self,
	    content: str,
	    prompt_file_path: Path | None,
	    additional_context: dict[str, str] | None = None,
	) -> RenderedPrompt:
		"""Render prompt content with the environment's template variables."""
		return render_prompt_template(
		    content, prompt_file_path, {
		        "FULL_STACK_FRAMEWORK_NAME":
		            self.full_stack_framework.display_name,
		        "CLIENT_SIDE_FRAMEWORK_NAME":
		            self.client_side_framework.display_name,
		        **(additional_context or {}),
		    })

	def augment_response_files(
	        self, files: list[LlmResponseFile]) -> list[LlmResponseFile]:
		"""Pass generated files through the file augmentation hook."""
		if not self._augment_generated_file:
			return files
		return [
		    f.model_copy(update={"code": self._augment_generated_file(f)})
		    for f in files
		]

	async def destroy(self) -> None:
		await self._lazy.close()
		await self.executor.destroy()
		if self._augmentation_runner:
			await self._augmentation_runner.dispose()

	def _generate_id(self, display_name: str) -> str:
		env_id = generate_id(display_name)
		if env_id is None:
			raise UserFacingError(
			    f'Could not auto-generate an ID from "{display_name}"')
		return env_id

	def _resolve_rating_refs(self, refs: list[Rating | str]) -> list[Rating]:
		resolved: list[Rating] = []
		for ref in refs:
			if isinstance(ref, str):
				rating = get_built_in_rating(ref)
				if rating is None:
					raise UserFacingError(
					    f'Unknown built-in rating "{ref}" in environment '
					    f'"{self.display_name}".')
				resolved.append(rating)
			else:
				resolved.append(ref)
		return resolved

	def _resolve_ratings(self, config: EnvironmentConfig) -> list[Rating]:
		ratings = self._resolve_rating_refs(config.ratings)
		overrides = config.rating_overrides or {}
		known = {r.id for r in ratings}
		for rating_id in overrides:
			if rating_id not in known:
				raise UserFacingError(
				    f'Rating with an ID of "{rating_id}" has not been '
				    f'configured. Cannot apply an override to it.')
		result = []
		for rating in ratings:
			override = overrides.get(rating.id)
			if override:
				rating = rating.model_copy(
				    update=override.model_dump(exclude_none=True))
			result.append(rating)
		return result

	def _get_rating_categories(
	        self,
	        config: EnvironmentConfig) -> dict[RatingCategory, CategoryConfig]:
		overrides = config.category_overrides or {}
		categories = {}
		for category, (name, max_points) in _DEFAULT_CATEGORIES.items():
			override = overrides.get(category)
			values = {"name": name, "max_points": max_points}
			if override:
				values.update(override.model_dump(exclude_none=True))
			categories[category] = CategoryConfig(**values)
		return categories

	def _validate_rating_hash(self, config: EnvironmentConfig) -> None:
		expected = config.expected_rating_hash
		if expected and expected != self.rating_hash:
			raise UserFacingError("\n".join([
			    f'Rating hash for environment "{self.display_name}" does not '
			    f"match the expectation.",
			    f"Expected: {expected}",
			    f"Actual: {self.rating_hash}",
			    "Either update the `expected_rating_hash` field in the config "
			    "or revert the ratings back to their previous configuration",
			]))

	def _resolve_analysis_prompts(
	        self, config: EnvironmentConfig) -> list[AnalysisPrompt]:
		return [
		    AnalysisPrompt(
		        name=ap.name,
		        prompt=self._render_environment_prompt(ap.path).result,
		        model=ap.model,
		        reports_filter=ap.reports_filter or
		        ReportContextFilter.NON_PERFECT_REPORTS,
		        ratings_filter=ap.ratings_filter or
		        RatingContextFilter.NON_PERFECT_RATINGS,
		    ) for ap in config.analysis_prompts
		]

	def _render_environment_prompt(self, relative_path: str | Path) -> RenderedPrompt:
		path = (self.root_path / relative_path).resolve()
		try:
			content = path.read_text(encoding="utf-8")
		except FileNotFoundError as exc:
			raise UserFacingError(f"Prompt file {path} does not exist") from exc
		return self.render_prompt(content, path)

	async def _render_system_prompt(self, relative_path: str) -> str:
		result = self._render_environment_prompt(relative_path).result
		post_process = getattr(self.executor, "post_process_system_prompt",
		                       None)
		if post_process is not None:
			result = await post_process(result, self.root_path)
		return result

	async def _resolve_executable_prompts(self) -> list[RootPromptDefinition]:
		env_ratings = self.ratings
		prompts: list[RootPromptDefinition] = []

		for decl in self.config.executable_prompts:
			if isinstance(decl, MultiStepPrompt):
				prompts.append(self._get_multi_step_prompt(decl, env_ratings))
			elif isinstance(decl, EvalPrompt):
				prompts.append(
				    PromptDefinition(
				        name=decl.name,
				        prompt=decl.text,
				        ratings=[
				            *env_ratings,
				            *self._resolve_rating_refs(decl.extra_ratings)
				        ],
				        system_prompt_type="generation",
				        context_file_patterns=decl.context_file_patterns,
				        metadata=decl.metadata,
				    ))
			else:
				if isinstance(decl, PromptFileEntry):
					pattern = decl.path
					ratings = [
					    *self._resolve_rating_refs(decl.ratings), *env_ratings
					]
					name = decl.name
				else:
					pattern = decl
					ratings = list(env_ratings)
					name = None
				for path in sorted(self.root_path.glob(pattern)):
					if not path.is_file():
						continue
					prompts.append(
					    self._get_single_prompt_definition(
					        name or path.stem,
					        path,
					        ratings,
					        is_editing=False,
					        metadata=None,
					    ))

		if self._augment_executable_prompt:
			await self._augment_prompts(prompts)
		return prompts

	async def _augment_prompts(self, prompts: list[RootPromptDefinition]) -> None:
		if self._augmentation_runner is None:
			if self._augmentation_runner_factory is None:
				raise UserFacingError(
				    "Prompt augmentation requires a generation runner")
			self._augmentation_runner = self._augmentation_runner_factory()
		hook = self._augment_executable_prompt
		runner = self._augmentation_runner

		async def update(prompt_def: PromptDefinition) -> None:
			text = hook(
			    PromptAugmentationContext(
			        prompt_def=prompt_def,
			        environment=self,
			        runner=runner,
			    ))
			if inspect.isawaitable(text):
				text = await text
			prompt_def.prompt = text

		await asyncio.gather(*(update(leaf) for root in prompts
		                       for leaf in leaf_prompts(root)))

	def _get_single_prompt_definition(
	    self,
	    name: str,
	    path: Path,
	    ratings: list[Rating],
	    *,
	    is_editing: bool,
	    metadata: Any,
	) -> PromptDefinition:
		rendered = self._render_environment_prompt(path)
		return PromptDefinition(
		    name=name,
		    prompt=rendered.result,
		    ratings=ratings,
		    system_prompt_type="editing" if is_editing else "generation",
		    context_file_patterns=rendered.context_files,
		    metadata=metadata,
		)

	def _get_multi_step_prompt(
	    self,
	    decl: MultiStepPrompt,
	    env_ratings: list[Rating],
	) -> MultiStepPromptDefinition:
		prompt_root = (self.root_path / decl.directory_path).resolve()
		name = prompt_root.name

		if not prompt_root.is_dir():
			raise UserFacingError(
			    "Multi-step prompt root must point to a directory. "
			    f'"{prompt_root}" is not a directory.')

		entries = list(prompt_root.iterdir())
		if not entries:
			raise UserFacingError("Multi-step prompt directory cannot be empty.")

		numbered: list[tuple[int, PromptDefinition]] = []
		for entry in entries:
			if not entry.is_file():
				raise UserFacingError(
				    "Multi-step prompt directory can only contain files. "
				    f"{entry.name} is not a file.")
			match = _STEP_RE.match(entry.name)
			if not match:
				raise UserFacingError(
				    "Multi-step prompt name must be in the form of "
				    f"`step-<number>`, but received '{entry.name}'")
			step_num = int(match.group(1))
			if step_num == 0:
				raise UserFacingError("Multi-step prompts start with `step-1`.")

			ratings = [
			    *self._resolve_rating_refs(
			        decl.step_ratings.get(entry.name, [])), *env_ratings
			]
			step = self._get_single_prompt_definition(
			    f"{name}-step-{step_num}",
			    entry,
			    ratings,
			    is_editing=step_num != 1,
			    metadata=decl.step_metadata.get(entry.name),
			)
			numbered.append((step_num, step))

		numbered.sort(key=lambda item: item[0])
		if self.strict_step_numbering:
			self._validate_step_numbers(name, [n for n, _ in numbered])
		return MultiStepPromptDefinition(
		    name=name,
		    steps=[step for _, step in numbered],
		)

	@staticmethod
	def _validate_step_numbers(name: str, numbers: list[int]) -> None:
		seen: set[int] = set()
		for num in numbers:
			if num in seen:
				raise UserFacingError(
				    f"Multi-step prompt '{name}' declares step {num} more than once."
				)
			seen.add(num)
		expected = list(range(1, len(numbers) + 1))
		if numbers != expected:
			missing = sorted(set(expected) - seen)
			raise UserFacingError(
			    f"Multi-step prompt '{name}' has non-contiguous steps; "
			    f"missing step(s): {', '.join(map(str, missing))}.")


__all__ = [
    "Environment",
    "AnalysisPrompt",
    "PromptAugmentationContext",
    "compute_rating_hash",
    "framework_info",
    "generate_id",
    "DEFAULT_REPAIR_PROMPT",
    "DEFAULT_PROMPT_TIMEOUT_MINUTES",
]
