"""
Built-in prompt texts.

Repair, summary, user-journey and rating instructions ship as markdown
files in the package's ``prompts`` directory and use the same
``{{VAR}}`` placeholders as environment prompts.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from webapp_eval.loaders.prompt_templates import substitute_variables

PROMPTS_DIR = Path(__file__).resolve().parents[1] / "prompts"


@lru_cache(maxsize=None)
def _read_prompt(name: str) -> str:
	return (PROMPTS_DIR / name).read_text(encoding="utf-8")


def load_prompt(name: str, **variables: str) -> str:
	"""
	Load a built-in prompt and fill its placeholders.

	Parameters:
		name: Filename inside the prompts directory.
		variables: Values for ``{{NAME}}`` placeholders.

	Returns:
		Rendered prompt text.
	"""
	text = _read_prompt(name)
	if variables:
		text = substitute_variables(text, variables)
	return text


__all__ = ["load_prompt", "PROMPTS_DIR"]
