from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, Field


class Usage(BaseModel):
	"""Token usage of one or more model calls.

	Summable: `a + b` returns a new instance with every counter added.
	"""

	input_tokens: int = Field(0, description="Prompt tokens")
	output_tokens: int = Field(0, description="Completion tokens")
	thinking_tokens: int = Field(0, description="Reasoning tokens")
	total_tokens: int = Field(0, description="All tokens billed")

	def __add__(self, other: "Usage") -> "Usage":
		return Usage(
		    input_tokens=self.input_tokens + other.input_tokens,
		    output_tokens=self.output_tokens + other.output_tokens,
		    thinking_tokens=self.thinking_tokens + other.thinking_tokens,
		    total_tokens=self.total_tokens + other.total_tokens,
		)

	def merge_turn(self, *, input_tokens: float = 0, output_tokens: float = 0,
	               thinking_tokens: float = 0) -> None:
		"""Accumulate turn-level usage in place."""
		inp = int(input_tokens or 0)
		out = int(output_tokens or 0)
		think = int(thinking_tokens or 0)
		self.input_tokens += inp
		self.output_tokens += out
		self.thinking_tokens += think
		self.total_tokens += inp + out + think


def aggregate(usages: Iterable[Usage | None]) -> Usage:
	"""Sum usages, skipping missing entries."""
	agg = Usage()
	for u in usages:
		if u is not None:
			agg = agg + u
	return agg


__all__ = ["Usage", "aggregate"]
