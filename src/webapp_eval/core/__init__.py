"""Core evaluation logic.

This subpackage contains the orchestration of a run and the execution
of individual evaluation jobs.

Key modules:
    - runner: Main orchestration via run_assessment()
    - environment: Resolved environment, prompt catalog and rating hash
    - eval_task: One prompt's job (generate, write, repair, rate)
    - repair_loop: Build/serve/test state machine with repairs
    - file_system: Workspaces, context files and output caching
    - user_journeys: User-journey generation
    - summary: Run summary and AI analyses
    - grouping: Run group ids
    - session: Copilot SDK session helpers
"""
