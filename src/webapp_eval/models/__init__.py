"""
webapp-eval models.

This subpackage contains Pydantic models for configuration, generation
requests, evaluation results and run reports.

Key models:
    - Config: Application configuration loaded from environment
    - AssessmentConfig: Options for a single run
    - Usage: Token usage, summable across calls
    - AssessmentResult: Outcome of one prompt (or step)
    - RunInfo: The run report

Prompt definitions (``models.prompts``) and environment definitions
(``models.environment_config``) depend on the rating types and are
imported from their modules directly.
"""

from .usage import Usage
from .config import Config, load_env
from .assessment_config import AssessmentConfig
from .llm import (
    LlmResponseFile,
    LlmContextFile,
    GenerationContext,
)
from .results import (
    BuildResult,
    BuildResultStatus,
    ServeTestingResult,
    TestExecutionResult,
    AttemptDetails,
    BuildAndTestAttempt,
    CodeAssessmentScore,
    AssessmentResult,
)
from .run_info import REPORT_VERSION, FailedPrompt, RunSummary, RunInfo

__all__ = [
    "Usage",
    "Config",
    "load_env",
    "AssessmentConfig",
    "LlmResponseFile",
    "LlmContextFile",
    "GenerationContext",
    "BuildResult",
    "BuildResultStatus",
    "ServeTestingResult",
    "TestExecutionResult",
    "AttemptDetails",
    "BuildAndTestAttempt",
    "CodeAssessmentScore",
    "AssessmentResult",
    "REPORT_VERSION",
    "FailedPrompt",
    "RunSummary",
    "RunInfo",
]
