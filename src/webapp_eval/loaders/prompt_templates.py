"""
Prompt templating.

Environment prompt files support three features:

- YAML frontmatter; ``context_files`` (or ``contextFiles``) lists glob
  patterns of project files the model should see alongside the prompt.
- ``{{NAME}}`` placeholders filled from the rendering context (unknown
  names are left untouched).
- ``{{> embed path}}`` directives replaced by the content of another file,
  resolved relative to the file containing the directive. Embedded files
  are rendered recursively.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from webapp_eval.loaders.frontmatter import split_frontmatter
from webapp_eval.utils.errors import UserFacingError

_VARIABLE_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_EMBED_RE = re.compile(r"\{\{>\s*embed\s+([^}\s]+)\s*\}\}")
_MAX_EMBED_DEPTH = 10


@dataclass
class RenderedPrompt:
	result: str
	context_files: list[str] = field(default_factory=list)


def substitute_variables(text: str, variables: Mapping[str, str]) -> str:
	"""Replace ``{{NAME}}`` placeholders whose name is in `variables`."""

	def repl(match: re.Match) -> str:
		name = match.group(1)
		if name in variables:
			return str(variables[name])
		return match.group(0)

	return _VARIABLE_RE.sub(repl, text)


def _context_patterns(meta: dict) -> list[str]:
	raw = meta.get("context_files", meta.get("contextFiles")) or []
	if isinstance(raw, str):
		return [raw]
	return [str(p) for p in raw]


def render_prompt_template(
    content: str,
    containing_file: Path | None,
    variables: Mapping[str, str] | None = None,
    _depth: int = 0,
) -> RenderedPrompt:
	"""
	Render a prompt file's content.

	Parameters:
		content: Raw file content.
		containing_file: Path of the file, used to resolve embeds. When
			None, embed directives are rejected.
		variables: Placeholder values.

	Returns:
		RenderedPrompt with the final text and the declared context file
		patterns (including those declared by embedded files).

	Raises:
		UserFacingError: For embeds without a containing file, missing
			embedded files, or embeds nested too deeply.
	"""
	if _depth > _MAX_EMBED_DEPTH:
		raise UserFacingError(
		    f"Prompt embeds are nested more than {_MAX_EMBED_DEPTH} levels deep")
	variables = variables or {}
	meta, body = split_frontmatter(content)
	context_files = _context_patterns(meta)

	def embed(match: re.Match) -> str:
		target = match.group(1)
		if containing_file is None:
			raise UserFacingError(
			    f"Cannot embed '{target}': prompt has no containing file")
		path = (containing_file.parent / target).resolve()
		if not path.is_file():
			raise UserFacingError(
			    f"Embedded file '{target}' referenced from "
			    f"{containing_file} does not exist")
		inner = render_prompt_template(
		    path.read_text(encoding="utf-8"),
		    path,
		    variables,
		    _depth + 1,
		)
		context_files.extend(inner.context_files)
		return inner.result

	body = _EMBED_RE.sub(embed, body)
	body = substitute_variables(body, variables)
	return RenderedPrompt(result=body, context_files=context_files)


__all__ = [
    "RenderedPrompt",
    "render_prompt_template",
    "substitute_variables",
]
