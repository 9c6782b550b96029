"""
Run grouping.

Runs of the same environment, model, scoring rules and labels on the
same day share a group id, so reports can be compared side by side.
"""

from __future__ import annotations

import hashlib
from datetime import datetime


def get_run_group_id(
    timestamp: datetime,
    environment_id: str,
    model: str,
    rating_hash: str,
    labels: list[str] | None = None,
) -> str:
	"""Stable hex id for runs that belong together."""
	key = "|".join([
	    timestamp.strftime("%Y-%m-%d"),
	    environment_id,
	    model,
	    rating_hash,
	    ",".join(sorted(set(labels or []))),
	])
	return hashlib.sha256(key.encode("utf-8")).hexdigest()


__all__ = ["get_run_group_id"]
