"""Executors that build, serve and test generated projects."""

from .local_executor import LocalExecutor

__all__ = ["LocalExecutor"]
