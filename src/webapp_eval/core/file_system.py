"""
Project workspace and generated-file handling for evaluation jobs.

A job's workspace is created once and shared by all of its steps. Every
write is confined to its target directory; a generated path that escapes
it fails the write.
"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Awaitable, Callable

from webapp_eval.models.llm import (
    LlmContextFile,
    LlmGenerateFilesResponse,
    LlmResponseFile,
)
from webapp_eval.models.prompts import RootPromptDefinition
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.paths import ensure_within
from webapp_eval.utils.protocols import ProgressLogger

logger = get_logger(__name__)

Cleanup = Callable[[], Awaitable[None]]

_IGNORED_DIRS = {"node_modules", ".git", "dist", ".angular", ".next"}


async def setup_project_structure(
    env,
    root_prompt_def: RootPromptDefinition,
    progress: ProgressLogger,
    output_directory: str | Path | None = None,
) -> tuple[Path, Cleanup]:
	"""
	Create the project directory for one job.

	The executor's source template (if any) is copied in. Without an
	output directory a temporary directory is used and removed by the
	returned cleanup; an explicit output directory is kept for inspection.

	Parameters:
		env: Environment whose executor may provide `source_directory`.
		root_prompt_def: The job's prompt.
		progress: Progress sink.
		output_directory: Optional parent directory to keep projects in.

	Returns:
		Tuple of (project directory, async cleanup callable).
	"""
	if output_directory:
		base = Path(output_directory)
		directory = ensure_within(base, base / env.id / root_prompt_def.name)
		if directory.exists():
			await asyncio.to_thread(shutil.rmtree, directory)
		directory.mkdir(parents=True)
		remove_on_cleanup = False
	else:
		directory = Path(
		    await asyncio.to_thread(tempfile.mkdtemp,
		                            prefix=f"webapp-eval-{env.id}-"))
		remove_on_cleanup = True

	source = getattr(env.executor, "source_directory", None)
	if source:
		progress.log(root_prompt_def, "info",
		             f"Copying project template from {source}")
		await asyncio.to_thread(shutil.copytree,
		                        source,
		                        directory,
		                        dirs_exist_ok=True)

	async def cleanup() -> None:
		if not remove_on_cleanup:
			return
		await asyncio.to_thread(shutil.rmtree, directory, ignore_errors=True)
		logger.debug("removed workspace %s", directory)

	return directory, cleanup


def _relative_posix(path: Path, root: Path) -> str:
	return path.relative_to(root).as_posix()


def _is_ignored(path: Path, root: Path) -> bool:
	return any(part in _IGNORED_DIRS for part in path.relative_to(root).parts)


def _resolve_context_files_sync(patterns: list[str],
                                directory: Path) -> list[LlmContextFile]:
	seen: dict[str, LlmContextFile] = {}
	for pattern in patterns:
		for path in sorted(directory.glob(pattern)):
			if not path.is_file() or _is_ignored(path, directory):
				continue
			rel = _relative_posix(path, directory)
			if rel not in seen:
				seen[rel] = LlmContextFile(
				    relative_path=rel,
				    content=path.read_text(encoding="utf-8", errors="replace"),
				)
	return list(seen.values())


async def resolve_context_files(patterns: list[str],
                                directory: Path) -> list[LlmContextFile]:
	"""Read project files matching `patterns` (globs relative to `directory`)."""
	if not patterns:
		return []
	return await asyncio.to_thread(_resolve_context_files_sync, patterns,
	                               directory)


def _write_files_sync(files: list[LlmResponseFile], roots: list[Path]) -> None:
	for root in roots:
		root.mkdir(parents=True, exist_ok=True)
		for file in files:
			target = ensure_within(root, root / file.file_path)
			target.parent.mkdir(parents=True, exist_ok=True)
			target.write_text(file.code, encoding="utf-8")


async def write_response_files(files: list[LlmResponseFile],
                               roots: list[Path]) -> None:
	"""
	Write generated files below each of `roots`.

	Raises:
		ValueError: If a file path escapes its root.
		OSError: If a file cannot be written.
	"""
	await asyncio.to_thread(_write_files_sync, files, roots)


def llm_output_directory(llm_output_dir: str | Path, env_id: str,
                         name: str) -> Path:
	"""Cache directory holding the generated output of one prompt step."""
	base = Path(llm_output_dir)
	return ensure_within(base, base / env_id / name)


def _load_local_output_sync(directory: Path) -> LlmGenerateFilesResponse:
	files = [
	    LlmResponseFile(
	        file_path=_relative_posix(path, directory),
	        code=path.read_text(encoding="utf-8", errors="replace"),
	    )
	    for path in sorted(directory.rglob("*"))
	    if path.is_file() and not _is_ignored(path, directory)
	]
	return LlmGenerateFilesResponse(files=files,
	                                reasoning="Loaded from local output")


async def load_local_output(llm_output_dir: str | Path, env_id: str,
                            name: str) -> LlmGenerateFilesResponse | None:
	"""Previously generated files of a step, or None if none are cached."""
	directory = llm_output_directory(llm_output_dir, env_id, name)
	if not directory.is_dir():
		return None
	return await asyncio.to_thread(_load_local_output_sync, directory)


__all__ = [
    "Cleanup",
    "setup_project_structure",
    "resolve_context_files",
    "write_response_files",
    "llm_output_directory",
    "load_local_output",
]
