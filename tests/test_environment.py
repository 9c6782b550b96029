"""Tests for Environment: ids, ratings, hashing and prompt resolution."""

import httpx
import pytest

from webapp_eval.core.environment import (
    DEFAULT_REPAIR_PROMPT,
    Environment,
    compute_rating_hash,
    generate_id,
)
from webapp_eval.models.environment_config import (
    EnvironmentConfig,
    RatingContextFilter,
    ReportContextFilter,
    assert_is_environment_config,
)
from webapp_eval.models.llm import LlmResponseFile
from webapp_eval.models.prompts import (
    EvalPrompt,
    MultiStepPrompt,
    MultiStepPromptDefinition,
)
from webapp_eval.ratings.built_in import (
    NO_AXE_VIOLATIONS,
    SUCCESSFUL_BUILD,
)
from webapp_eval.ratings.rating_types import RatingCategory
from webapp_eval.utils.errors import UserFacingError


class DummyExecutor:

	def __init__(self):
		self.destroyed = False

	async def destroy(self):
		self.destroyed = True


class DummyRunner:
	id = "dummy"
	display_name = "Dummy"

	def __init__(self):
		self.disposed = False

	async def dispose(self):
		self.disposed = True


def _write(path, text):
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(text)
	return path


def _make_env(tmp_path, executor=None, runner_factory=None, **overrides):
	_write(tmp_path / "system.md",
	       "You write {{FULL_STACK_FRAMEWORK_NAME}} apps.")
	values = {
	    "display_name": "Angular Signals!",
	    "client_side_framework": "angular",
	    "ratings": ["successful-build"],
	    "generation_system_prompt": "system.md",
	    "executable_prompts": [
	        EvalPrompt(name="inline", text="Build a counter"),
	    ],
	}
	values.update(overrides)
	return Environment(tmp_path,
	                   EnvironmentConfig(**values),
	                   executor or DummyExecutor(),
	                   augmentation_runner_factory=runner_factory)


class TestIdentity:

	def test_id_is_slug_of_display_name(self, tmp_path):
		env = _make_env(tmp_path)
		assert env.id == "angular-signals"

	def test_explicit_id_wins(self, tmp_path):
		assert _make_env(tmp_path, id="ng").id == "ng"

	def test_underivable_id_raises(self, tmp_path):
		with pytest.raises(UserFacingError, match="Could not auto-generate"):
			_make_env(tmp_path, display_name="!!!")

	def test_generate_id(self):
		assert generate_id("  Next.js  App ") == "next-js-app"
		assert generate_id("???") is None

	def test_framework_display_names(self, tmp_path):
		env = _make_env(tmp_path)
		assert env.client_side_framework.display_name == "Angular"
		assert env.full_stack_framework.display_name == "Angular"
		env = _make_env(tmp_path,
		                client_side_framework="react",
		                full_stack_framework="next")
		assert env.client_side_framework.display_name == "React"
		assert env.full_stack_framework.display_name == "Next.js"

	def test_unknown_framework_keeps_id(self, tmp_path):
		env = _make_env(tmp_path, client_side_framework="lit")
		assert env.client_side_framework.display_name == "lit"


class TestRatings:

	def test_built_in_ratings_resolve(self, tmp_path):
		env = _make_env(tmp_path,
		                ratings=["successful-build", "no-axe-violations"])
		assert [r.id for r in env.ratings] == [
		    "successful-build", "no-axe-violations"
		]

	def test_unknown_built_in_raises(self, tmp_path):
		with pytest.raises(UserFacingError,
		                   match='Unknown built-in rating "nope"'):
			_make_env(tmp_path, ratings=["nope"])

	def test_default_categories(self, tmp_path):
		categories = _make_env(tmp_path).rating_categories
		assert categories[RatingCategory.HIGH_IMPACT].max_points == 60
		assert categories[RatingCategory.MEDIUM_IMPACT].max_points == 30
		assert categories[RatingCategory.LOW_IMPACT].max_points == 10

	def test_category_override_keeps_name(self, tmp_path):
		env = _make_env(tmp_path,
		                category_overrides={"high-impact": {
		                    "max_points": 80
		                }})
		high = env.rating_categories[RatingCategory.HIGH_IMPACT]
		assert high.max_points == 80
		assert high.name == "High Impact"

	def test_rating_override_applies(self, tmp_path):
		env = _make_env(tmp_path,
		                rating_overrides={
		                    "successful-build": {
		                        "score_reduction": "25%",
		                        "category": "medium-impact",
		                    }
		                })
		rating = env.ratings[0]
		assert rating.score_reduction == "25%"
		assert rating.category == RatingCategory.MEDIUM_IMPACT
		assert SUCCESSFUL_BUILD.score_reduction == "50%"

	def test_override_for_unconfigured_rating_raises(self, tmp_path):
		with pytest.raises(UserFacingError, match="has not been configured"):
			_make_env(tmp_path,
			          rating_overrides={"passing-tests": {
			              "score_reduction": "10%"
			          }})


class TestRatingHash:

	def test_hash_ignores_rating_order(self, tmp_path):
		a = _make_env(tmp_path,
		              ratings=["successful-build", "no-axe-violations"])
		b = _make_env(tmp_path,
		              ratings=["no-axe-violations", "successful-build"])
		assert a.rating_hash == b.rating_hash

	def test_hash_changes_with_score_reduction(self, tmp_path):
		base = _make_env(tmp_path)
		changed = _make_env(tmp_path,
		                    rating_overrides={
		                        "successful-build": {
		                            "score_reduction": "40%"
		                        }
		                    })
		assert base.rating_hash != changed.rating_hash

	def test_hash_changes_with_category_points(self, tmp_path):
		base = _make_env(tmp_path)
		changed = _make_env(tmp_path,
		                    category_overrides={"high-impact": {
		                        "max_points": 70
		                    }})
		assert base.rating_hash != changed.rating_hash

	def test_hash_ignores_label_order(self, tmp_path):
		env = _make_env(tmp_path)
		first = NO_AXE_VIOLATIONS.model_copy(
		    update={"grouping_labels": ["a11y", "ui"]})
		second = NO_AXE_VIOLATIONS.model_copy(
		    update={"grouping_labels": ["ui", "a11y"]})
		assert (compute_rating_hash([first], env.rating_categories) ==
		        compute_rating_hash([second], env.rating_categories))

	def test_matching_expected_hash_passes(self, tmp_path):
		expected = _make_env(tmp_path).rating_hash
		env = _make_env(tmp_path, expected_rating_hash=expected)
		assert env.rating_hash == expected

	def test_mismatched_expected_hash_raises(self, tmp_path):
		actual = _make_env(tmp_path).rating_hash
		with pytest.raises(UserFacingError) as exc_info:
			_make_env(tmp_path, expected_rating_hash="deadbeef")
		message = str(exc_info.value)
		assert "Expected: deadbeef" in message
		assert f"Actual: {actual}" in message


class TestExecutablePrompts:

	@pytest.mark.asyncio
	async def test_glob_prompts_sorted_with_frontmatter(self, tmp_path):
		_write(tmp_path / "prompts" / "todo.md",
		       "---\ncontext_files: ['src/**/*.ts']\n---\n"
		       "Build a {{CLIENT_SIDE_FRAMEWORK_NAME}} todo app")
		_write(tmp_path / "prompts" / "blog.md", "Build a blog")
		env = _make_env(tmp_path, executable_prompts=["prompts/*.md"])
		prompts = await env.executable_prompts()
		assert [p.name for p in prompts] == ["blog", "todo"]
		todo = prompts[1]
		assert todo.prompt == "Build a Angular todo app"
		assert todo.context_file_patterns == ["src/**/*.ts"]
		assert todo.system_prompt_type == "generation"
		assert [r.id for r in todo.ratings] == ["successful-build"]

	@pytest.mark.asyncio
	async def test_prompt_file_entry_name_and_ratings(self, tmp_path):
		_write(tmp_path / "prompts" / "todo.md", "Build a todo app")
		env = _make_env(tmp_path,
		                executable_prompts=[{
		                    "path": "prompts/todo.md",
		                    "name": "todo-custom",
		                    "ratings": ["no-todo-comments"],
		                }])
		(prompt,) = await env.executable_prompts()
		assert prompt.name == "todo-custom"
		assert [r.id for r in prompt.ratings
		       ] == ["no-todo-comments", "successful-build"]

	@pytest.mark.asyncio
	async def test_inline_prompt(self, tmp_path):
		env = _make_env(tmp_path,
		                executable_prompts=[
		                    EvalPrompt(name="counter",
		                               text="Build a counter",
		                               extra_ratings=["passing-tests"],
		                               context_file_patterns=["*.json"],
		                               metadata={"tier": 1})
		                ])
		(prompt,) = await env.executable_prompts()
		assert prompt.prompt == "Build a counter"
		assert [r.id for r in prompt.ratings
		       ] == ["successful-build", "passing-tests"]
		assert prompt.context_file_patterns == ["*.json"]
		assert prompt.metadata == {"tier": 1}

	@pytest.mark.asyncio
	async def test_prompts_are_resolved_once(self, tmp_path):
		env = _make_env(tmp_path)
		first = await env.executable_prompts()
		second = await env.executable_prompts()
		assert first is second

	@pytest.mark.asyncio
	async def test_augmentation_hook_rewrites_prompts(self, tmp_path):
		runners = []

		def factory():
			runners.append(DummyRunner())
			return runners[-1]

		async def augment(ctx):
			assert ctx.runner is runners[0]
			return ctx.prompt_def.prompt.upper()

		env = _make_env(tmp_path,
		                runner_factory=factory,
		                augment_executable_prompt=augment)
		(prompt,) = await env.executable_prompts()
		assert prompt.prompt == "BUILD A COUNTER"
		await env.destroy()
		assert len(runners) == 1
		assert runners[0].disposed

	@pytest.mark.asyncio
	async def test_augmentation_without_runner_raises(self, tmp_path):
		env = _make_env(tmp_path, augment_executable_prompt=lambda ctx: "x")
		with pytest.raises(UserFacingError, match="requires a generation"):
			await env.executable_prompts()


class TestMultiStepPrompts:

	async def _resolve(self, tmp_path, files, **overrides):
		directory = tmp_path / "flows" / "cart"
		directory.mkdir(parents=True)
		for name in files:
			_write(directory / name, f"Prompt for {name}")
		env = _make_env(tmp_path,
		                executable_prompts=[
		                    MultiStepPrompt(directory_path="flows/cart")
		                ],
		                **overrides)
		(root,) = await env.executable_prompts()
		return root

	@pytest.mark.asyncio
	async def test_steps_sorted_numerically(self, tmp_path):
		root = await self._resolve(tmp_path,
		                           ["step-10.md", "step-1.md", "step-2.md"])
		assert isinstance(root, MultiStepPromptDefinition)
		assert root.name == "cart"
		assert [s.name for s in root.steps] == [
		    "cart-step-1", "cart-step-2", "cart-step-10"
		]
		assert [s.system_prompt_type for s in root.steps] == [
		    "generation", "editing", "editing"
		]

	@pytest.mark.asyncio
	async def test_step_ratings_and_metadata(self, tmp_path):
		directory = tmp_path / "flows" / "cart"
		_write(directory / "step-1.md", "first")
		_write(directory / "step-2.md", "second")
		env = _make_env(tmp_path,
		                executable_prompts=[
		                    MultiStepPrompt(
		                        directory_path="flows/cart",
		                        step_ratings={"step-2.md": ["passing-tests"]},
		                        step_metadata={"step-1.md": "seed"},
		                    )
		                ])
		(root,) = await env.executable_prompts()
		assert [r.id for r in root.steps[1].ratings
		       ] == ["passing-tests", "successful-build"]
		assert root.steps[0].metadata == "seed"

	@pytest.mark.asyncio
	async def test_bad_step_name(self, tmp_path):
		with pytest.raises(UserFacingError, match="step-<number>"):
			await self._resolve(tmp_path, ["step-1.md", "readme.md"])

	@pytest.mark.asyncio
	async def test_step_zero(self, tmp_path):
		with pytest.raises(UserFacingError, match="start with `step-1`"):
			await self._resolve(tmp_path, ["step-0.md"])

	@pytest.mark.asyncio
	async def test_empty_directory(self, tmp_path):
		with pytest.raises(UserFacingError, match="cannot be empty"):
			await self._resolve(tmp_path, [])

	@pytest.mark.asyncio
	async def test_nested_directory_rejected(self, tmp_path):
		(tmp_path / "flows" / "cart" / "step-2").mkdir(parents=True)
		_write(tmp_path / "flows" / "cart" / "step-1.md", "first")
		env = _make_env(tmp_path,
		                executable_prompts=[
		                    MultiStepPrompt(directory_path="flows/cart")
		                ])
		with pytest.raises(UserFacingError, match="can only contain files"):
			await env.executable_prompts()

	@pytest.mark.asyncio
	async def test_missing_directory(self, tmp_path):
		env = _make_env(tmp_path,
		                executable_prompts=[
		                    MultiStepPrompt(directory_path="flows/none")
		                ])
		with pytest.raises(UserFacingError, match="is not a directory"):
			await env.executable_prompts()

	@pytest.mark.asyncio
	async def test_gaps_allowed_by_default(self, tmp_path):
		root = await self._resolve(tmp_path, ["step-1.md", "step-3.md"])
		assert [s.name for s in root.steps] == ["cart-step-1", "cart-step-3"]

	@pytest.mark.asyncio
	async def test_strict_numbering_rejects_gaps(self, tmp_path):
		with pytest.raises(UserFacingError, match=r"missing step\(s\): 2"):
			await self._resolve(tmp_path, ["step-1.md", "step-3.md"],
			                    strict_step_numbering=True)

	@pytest.mark.asyncio
	async def test_strict_numbering_rejects_duplicates(self, tmp_path):
		with pytest.raises(UserFacingError, match="more than once"):
			await self._resolve(tmp_path, ["step-1.md", "step-1-alt.md"],
			                    strict_step_numbering=True)


class TestSystemPrompts:

	@pytest.mark.asyncio
	async def test_generation_prompt_rendered(self, tmp_path):
		env = _make_env(tmp_path)
		assert await env.system_prompt_generation(
		) == "You write Angular apps."

	@pytest.mark.asyncio
	async def test_defaults_for_repair_and_editing(self, tmp_path):
		env = _make_env(tmp_path)
		assert await env.system_prompt_repair() == DEFAULT_REPAIR_PROMPT
		assert await env.system_prompt_editing(
		) == await env.system_prompt_generation()

	@pytest.mark.asyncio
	async def test_configured_editing_prompt(self, tmp_path):
		_write(tmp_path / "editing.md", "Edit carefully.")
		env = _make_env(tmp_path, editing_system_prompt="editing.md")
		assert await env.system_prompt_editing() == "Edit carefully."

	@pytest.mark.asyncio
	async def test_executor_post_processes_system_prompts(self, tmp_path):

		class PostProcessingExecutor(DummyExecutor):

			async def post_process_system_prompt(self, prompt, root):
				return f"{prompt}\nRoot: {root.name}"

		env = _make_env(tmp_path, executor=PostProcessingExecutor())
		assert await env.system_prompt_generation() == (
		    f"You write Angular apps.\nRoot: {tmp_path.name}")

	@pytest.mark.asyncio
	async def test_missing_system_prompt_file(self, tmp_path):
		env = _make_env(tmp_path, repair_system_prompt="missing.md")
		with pytest.raises(UserFacingError, match="does not exist"):
			await env.system_prompt_repair()


class TestGetPrompt:

	@pytest.mark.asyncio
	async def test_without_rag(self, tmp_path):
		env = _make_env(tmp_path)
		text = await env.get_prompt("generation", "Build a counter")
		assert text == "You write Angular apps.\n\nBuild a counter"

	@pytest.mark.asyncio
	async def test_rag_endpoint_requires_placeholder(self, tmp_path):
		env = _make_env(tmp_path)
		with pytest.raises(UserFacingError, match='"PROMPT" substring'):
			await env.get_prompt("generation", "x", "https://rag.local/search")

	@pytest.mark.asyncio
	async def test_rag_response_replaces_user_prompt(self, tmp_path,
	                                                 monkeypatch):
		seen = {}
		real_client = httpx.AsyncClient

		def handler(request):
			seen["url"] = str(request.url)
			return httpx.Response(200, text="Use standalone components.")

		monkeypatch.setattr(
		    httpx, "AsyncClient", lambda **kwargs: real_client(
		        transport=httpx.MockTransport(handler), **kwargs))
		env = _make_env(tmp_path)
		text = await env.get_prompt("generation", "todo app",
		                            "https://rag.local/search?q=PROMPT")
		assert text == "You write Angular apps.\n\nUse standalone components."
		assert "q=todo%20app" in seen["url"]

	@pytest.mark.asyncio
	async def test_rag_error_status(self, tmp_path, monkeypatch):
		real_client = httpx.AsyncClient
		monkeypatch.setattr(
		    httpx, "AsyncClient", lambda **kwargs: real_client(
		        transport=httpx.MockTransport(lambda request: httpx.Response(
		            503)), **kwargs))
		env = _make_env(tmp_path)
		with pytest.raises(UserFacingError, match="Failed to fetch"):
			await env.get_prompt("generation", "x",
			                     "https://rag.local/search?q=PROMPT")


class TestMiscellaneous:

	def test_analysis_prompts_default_filters(self, tmp_path):
		_write(tmp_path / "analysis.md", "Which {{FULL_STACK_FRAMEWORK_NAME}} "
		       "issues repeat?")
		env = _make_env(tmp_path,
		                analysis_prompts=[{
		                    "name": "repeats",
		                    "path": "analysis.md"
		                }])
		(analysis,) = env.analysis_prompts
		assert analysis.prompt == "Which Angular issues repeat?"
		assert analysis.reports_filter == ReportContextFilter.NON_PERFECT_REPORTS
		assert analysis.ratings_filter == RatingContextFilter.NON_PERFECT_RATINGS

	def test_augment_response_files(self, tmp_path):
		env = _make_env(tmp_path,
		                augment_generated_file=lambda f: f.code + "\n// ok")
		files = [LlmResponseFile(file_path="a.ts", code="let a = 1;")]
		(augmented,) = env.augment_response_files(files)
		assert augmented.code == "let a = 1;\n// ok"
		assert files[0].code == "let a = 1;"

	@pytest.mark.asyncio
	async def test_destroy_tears_down_executor(self, tmp_path):
		executor = DummyExecutor()
		env = _make_env(tmp_path, executor=executor)
		await env.destroy()
		assert executor.destroyed


class TestConfigValidation:

	def test_lists_every_issue(self):
		with pytest.raises(UserFacingError) as exc_info:
			assert_is_environment_config({"display_name": "x"})
		message = str(exc_info.value)
		assert message.startswith("Environment parsing failed:")
		assert "  - client_side_framework:" in message
		assert "  - generation_system_prompt:" in message

	def test_unknown_fields_rejected(self):
		with pytest.raises(UserFacingError, match="unexpected_field"):
			assert_is_environment_config({
			    "display_name": "x",
			    "client_side_framework": "angular",
			    "ratings": [],
			    "generation_system_prompt": "s.md",
			    "executable_prompts": [],
			    "unexpected_field": 1,
			})

	def test_local_executor_fields_collected(self):
		config = assert_is_environment_config({
		    "display_name": "x",
		    "client_side_framework": "angular",
		    "ratings": [],
		    "generation_system_prompt": "s.md",
		    "executable_prompts": [],
		    "build_command": "pnpm build",
		    "test_command": "pnpm test",
		})
		local = config.local_executor_config()
		assert local.build_command == "pnpm build"
		assert local.test_command == "pnpm test"
		assert local.package_manager == "npm"
