"""Shared utility functions.

This subpackage provides the concurrency substrate and common helpers
used across the application.

Key modules:
    - cancellation: Cancellation tokens and signal combination
    - timeout: Deadline-bounded calls
    - pools: Bounded worker pools
    - shared: Process-wide memoized operations
    - exec: Subprocess execution
    - parsing: JSON extraction from model replies
    - paths: Path safety and validation utilities
    - logging: Logging configuration
    - errors: User-facing error type
    - protocols: Protocol definitions for dependency injection
"""

from .errors import UserFacingError
from .cancellation import (
    CancellationToken,
    OperationCancelledError,
    combine_signals,
)
from .timeout import CallTimeoutError, call_with_timeout
from .pools import WorkerPool, resolve_pool_sizes
from .shared import SharedFutureCache, PROCESS_CACHE
from .exec import CommandResult, execute_command
from .parsing import extract_json
from .paths import ensure_within
from .logging import configure_logging, get_logger

__all__ = [
    # errors
    "UserFacingError",
    # cancellation
    "CancellationToken",
    "OperationCancelledError",
    "combine_signals",
    # timeout
    "CallTimeoutError",
    "call_with_timeout",
    # pools
    "WorkerPool",
    "resolve_pool_sizes",
    # shared
    "SharedFutureCache",
    "PROCESS_CACHE",
    # exec
    "CommandResult",
    "execute_command",
    # parsing
    "extract_json",
    # paths
    "ensure_within",
    # logging
    "configure_logging",
    "get_logger",
]
