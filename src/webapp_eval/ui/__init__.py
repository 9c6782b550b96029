"""User interface components.

This subpackage provides terminal progress display and event stream
collection.

Key modules:
    - progress: Text and Rich live progress loggers
    - streaming: Copilot session event collection
"""

from webapp_eval.ui.progress import (
    NoopProgressLogger,
    TextProgressLogger,
    DynamicProgressLogger,
    create_progress_logger,
)
from webapp_eval.ui.streaming import (
    StreamCollector,
    ProgressCallback,
    fetch_last_assistant_message,
)

__all__ = [
    "NoopProgressLogger",
    "TextProgressLogger",
    "DynamicProgressLogger",
    "create_progress_logger",
    "StreamCollector",
    "ProgressCallback",
    "fetch_last_assistant_message",
]
