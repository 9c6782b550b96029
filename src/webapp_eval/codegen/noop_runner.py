"""
Placeholder backend that cannot generate anything.

Useful for runs that only replay cached output in local mode, where no
generation call is ever made.
"""

from __future__ import annotations


class NoopUnimplementedRunner:
	id = "noop-unimplemented"
	display_name = "Noop implementation"

	async def generate_files(self, request, token=None):
		raise NotImplementedError("The noop runner cannot generate files")

	async def generate_text(self, request, token=None):
		raise NotImplementedError("The noop runner cannot generate text")

	async def generate_constrained(self, request, token=None):
		raise NotImplementedError(
		    "The noop runner cannot generate constrained output")

	def get_supported_models(self) -> list[str]:
		return []

	async def dispose(self) -> None:
		return None


__all__ = ["NoopUnimplementedRunner"]
