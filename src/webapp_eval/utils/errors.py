"""
Error types shared across the runner.
"""

from __future__ import annotations


class UserFacingError(Exception):
	"""Known, actionable error whose message is shown without a stack trace.

	Raised for misconfiguration: missing prompts, invalid multi-step
	layouts, schema violations, rating hash mismatches and the like.
	"""


__all__ = ["UserFacingError"]
