"""
webapp-eval - Evaluation of code-generation agents on web app prompts.

This package runs a catalog of prompts through a code-generation backend,
builds, tests and repairs the generated projects, rates the results and
writes a run report.

Main entry points:
    - webapp_eval.main: CLI entrypoint
    - webapp_eval.core.runner: run_assessment() for a full run
    - webapp_eval.models.config: Config and load_env()
"""
