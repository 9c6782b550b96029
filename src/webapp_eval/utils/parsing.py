"""
JSON extraction utilities for model responses.

Models are asked to answer with JSON in a fenced block, but in practice
they wrap it in prose, use bare fences, or skip the fence entirely.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

ANY_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.S)


def _extract_fenced_blocks(text: str) -> list[str]:
	"""Return fenced blocks, last one first."""
	return [m.group(1).strip() for m in reversed(list(ANY_FENCE_RE.finditer(text)))]


def _extract_balanced_json(text: str) -> Optional[str]:
	"""Extract the first balanced JSON object, skipping braces inside strings."""
	depth = 0
	start = None
	in_string = False
	escaped = False
	for i, ch in enumerate(text):
		if in_string:
			if escaped:
				escaped = False
			elif ch == "\\":
				escaped = True
			elif ch == '"':
				in_string = False
			continue
		if ch == '"' and depth > 0:
			in_string = True
		elif ch == '{':
			if depth == 0:
				start = i
			depth += 1
		elif ch == '}' and depth > 0:
			depth -= 1
			if depth == 0 and start is not None:
				return text[start:i + 1]
	return None


def extract_json(text: str | None) -> Optional[Any]:
	"""
	Extract JSON from a raw model response.

	Tries, in order: the whole text, fenced blocks (last first) and the
	first balanced object.

	Parameters:
		text: Raw response text.

	Returns:
		Parsed JSON value, or None if nothing parses.
	"""
	if not text:
		return None
	candidates = [text.strip(), *_extract_fenced_blocks(text)]
	balanced = _extract_balanced_json(text)
	if balanced:
		candidates.append(balanced)
	for cand in candidates:
		try:
			return json.loads(cand)
		except ValueError:
			continue
	return None


__all__ = ["extract_json"]
