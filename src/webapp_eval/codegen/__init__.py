"""Code generation backends.

Backends are imported on demand by ``get_runner_by_name``.

Key modules:
    - runner_creation: Backend names and lazy construction
    - copilot_runner: GitHub Copilot SDK backend
    - noop_runner: Placeholder backend for executors that generate
      files themselves
"""

from .runner_creation import RUNNER_NAMES, RunnerName, get_runner_by_name

__all__ = ["RUNNER_NAMES", "RunnerName", "get_runner_by_name"]
