"""Loaders for environments and prompt texts.

Key modules:
    - environment: Environment definitions from YAML or Python
    - prompt_templates: Frontmatter, placeholders and embeds
    - prompts: Built-in prompt texts
    - frontmatter: YAML frontmatter splitting
"""

from .frontmatter import split_frontmatter
from .prompt_templates import render_prompt_template, substitute_variables
from .prompts import load_prompt

__all__ = [
    "split_frontmatter",
    "render_prompt_template",
    "substitute_variables",
    "load_prompt",
]
