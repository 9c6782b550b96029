"""
Progress display for evaluation runs.

`TextProgressLogger` prints one line per event (used in CI);
`DynamicProgressLogger` keeps a Rich live table with one row per prompt.
"""

from __future__ import annotations

from dataclasses import dataclass

from rich import box
from rich.console import Console, Group
from rich.live import Live
from rich.table import Table
from rich.text import Text

from webapp_eval.models.results import AssessmentResult
from webapp_eval.utils.protocols import ProgressType

_TYPE_STYLES: dict[str, str] = {
    "info": "dim",
    "codegen": "cyan",
    "build": "blue",
    "serve-testing": "magenta",
    "test": "magenta",
    "rating": "yellow",
    "success": "green",
    "error": "red",
    "eval": "bold",
}

_MAX_MESSAGE_LENGTH = 120


def _score_text(results: list[AssessmentResult]) -> str:
	if not results:
		return "no results"
	total = sum(r.score.total_points for r in results)
	max_total = sum(r.score.max_overall_points for r in results)
	return f"{total:g}/{max_total:g} points"


class NoopProgressLogger:
	"""Discards all progress events."""

	def initialize(self, total: int) -> None:
		pass

	def log(self, prompt_def, type: ProgressType, message: str,
	        details: str | None = None) -> None:
		pass

	def eval_finished(self, prompt_def, results) -> None:
		pass

	def finalize(self) -> None:
		pass


class TextProgressLogger:
	"""Prints every event as a line of text."""

	def __init__(self, console: Console | None = None) -> None:
		self.console = console or Console(highlight=False)
		self.total = 0
		self.finished = 0

	def initialize(self, total: int) -> None:
		self.total = total
		self.console.print(f"Evaluating {total} prompt(s)")

	def log(self, prompt_def, type: ProgressType, message: str,
	        details: str | None = None) -> None:
		line = Text()
		line.append(f"[{prompt_def.name}] ", style="bold")
		line.append(f"{type}: ", style=_TYPE_STYLES.get(type, ""))
		line.append(message)
		if details:
			line.append(f" ({details})", style="dim")
		self.console.print(line)

	def eval_finished(self, prompt_def,
	                  results: list[AssessmentResult]) -> None:
		self.finished += 1
		self.console.print(
		    Text(f"[{self.finished}/{self.total}] {prompt_def.name} finished: "
		         f"{_score_text(results)}"))

	def finalize(self) -> None:
		self.console.print("All evaluations finished")


@dataclass
class _PromptRow:
	name: str
	status: str = "pending"
	style: str = "dim"
	message: str = ""


class DynamicProgressLogger:
	"""
	Rich-based live table of prompt progress.

	Uses Rich's Live display with auto-refresh to update in place.
	"""

	def __init__(self, console: Console | None = None) -> None:
		self.console = console or Console()
		self.rows: dict[str, _PromptRow] = {}
		self.total = 0
		self.finished = 0
		self.live: Live | None = None

	def _row(self, name: str) -> _PromptRow:
		row = self.rows.get(name)
		if row is None:
			row = self.rows[name] = _PromptRow(name=name)
		return row

	def _build_table(self) -> Group:
		table = Table(box=box.ROUNDED, expand=True, show_header=True)
		table.add_column("Prompt", no_wrap=True)
		table.add_column("Status", no_wrap=True)
		table.add_column("Last message")
		for row in self.rows.values():
			table.add_row(row.name, Text(row.status, style=row.style),
			              row.message)
		header = Text(f"{self.finished}/{self.total} prompts finished",
		              style="bold")
		return Group(header, table)

	def _refresh(self) -> None:
		if self.live:
			self.live.update(self._build_table())

	def initialize(self, total: int) -> None:
		self.total = total
		self.live = Live(
		    self._build_table(),
		    console=self.console,
		    refresh_per_second=4,
		)
		self.live.start()

	def log(self, prompt_def, type: ProgressType, message: str,
	        details: str | None = None) -> None:
		row = self._row(prompt_def.name)
		row.status = type
		row.style = _TYPE_STYLES.get(type, "")
		text = f"{message} ({details})" if details else message
		if len(text) > _MAX_MESSAGE_LENGTH:
			text = text[:_MAX_MESSAGE_LENGTH] + "..."
		row.message = text
		self._refresh()

	def eval_finished(self, prompt_def,
	                  results: list[AssessmentResult]) -> None:
		self.finished += 1
		row = self._row(prompt_def.name)
		row.status = "done" if results else "failed"
		row.style = "green" if results else "red"
		row.message = _score_text(results)
		self._refresh()

	def finalize(self) -> None:
		"""Stop the live display."""
		if self.live:
			self._refresh()
			self.live.stop()
			self.live = None


def create_progress_logger(mode: str, console: Console | None = None):
	"""Progress logger for a logging mode ("text-only" or "dynamic")."""
	if mode == "text-only":
		return TextProgressLogger(console)
	return DynamicProgressLogger(console)


__all__ = [
    "NoopProgressLogger",
    "TextProgressLogger",
    "DynamicProgressLogger",
    "create_progress_logger",
]
