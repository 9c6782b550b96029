"""Run reports.

Key modules:
    - report_logging: Console summary and report persistence
    - ai_summary: Model-written summaries and analyses of a run
"""

from .report_logging import print_run_summary, write_report_to_disk
from .ai_summary import summarize_report_with_ai, chat_with_report_ai

__all__ = [
    "print_run_summary",
    "write_report_to_disk",
    "summarize_report_with_ai",
    "chat_with_report_ai",
]
