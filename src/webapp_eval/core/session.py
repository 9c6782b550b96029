"""
Copilot session utilities.

Helpers shared by every model call the Copilot runner makes: session
configuration, a send-and-collect round trip that falls back to streamed
or stored messages, and teardown that never raises.
"""

from __future__ import annotations

import asyncio

from webapp_eval.ui.streaming import (
    StreamCollector,
    fetch_last_assistant_message,
)
from webapp_eval.utils.logging import get_logger
from webapp_eval.utils.protocols import SessionProtocol

logger = get_logger(__name__)


def build_session_config(
    *,
    model: str,
    streaming: bool = True,
    system_message: str | None = None,
    working_directory: str | None = None,
    session_id: str | None = None,
) -> dict:
	"""Build a session configuration dict for create_session().

	Parameters:
		model: Model identifier string.
		streaming: Whether to enable streaming.
		system_message: Optional system message text, appended to the
			CLI's default system message.
		working_directory: Optional directory the session operates in.
		session_id: Optional session identifier.

	Returns:
		Session configuration dictionary.
	"""
	config: dict = {
	    "model": model,
	    "streaming": streaming,
	}
	if system_message is not None:
		config["system_message"] = {
		    "mode": "append",
		    "content": system_message
		}
	if working_directory is not None:
		config["working_directory"] = working_directory
	if session_id is not None:
		config["session_id"] = session_id
	return config


def build_message_options(prompt: str,
                          attachments: list[str] | None = None) -> dict:
	"""Message options for `send_and_wait`, with optional file attachments."""
	options: dict = {"prompt": prompt}
	if attachments:
		options["attachments"] = [{
		    "type": "file",
		    "path": path
		} for path in attachments]
	return options


async def send_and_collect(
    session: SessionProtocol,
    options: dict,
    timeout: int,
    collector: StreamCollector,
) -> str:
	"""Send a message and collect the response text.

	Parameters:
		session: Active Copilot session.
		options: Message options (see `build_message_options`).
		timeout: Timeout in seconds.
		collector: Stream collector registered on the session.

	Returns:
		Raw response text; empty when the model produced nothing.

	Raises:
		asyncio.TimeoutError: If the session did not become idle in time.
			The session is aborted first.
	"""
	raw: str | None = None
	try:
		response = await session.send_and_wait(options, timeout=timeout)
		if response and getattr(response, "data", None):
			raw = response.data.content
	except asyncio.TimeoutError:
		await abort_session_safe(session, collector.label)
		raise

	if not raw:
		raw = collector.text or (await fetch_last_assistant_message(session)
		                         or "")
	return raw


async def abort_session_safe(session: SessionProtocol, label: str) -> None:
	"""Abort in-flight work on a session, logging failures."""
	try:
		await session.abort()
	except Exception:
		logger.debug("failed to abort %s session", label, exc_info=True)


async def destroy_session_safe(
    session: SessionProtocol | None,
    label: str,
) -> None:
	"""Destroy a session, logging but not raising on failure.

	Parameters:
		session: Session to destroy, or None.
		label: Label for log messages (e.g., "generate todo-app").
	"""
	if not session:
		return
	try:
		await session.destroy()
	except Exception:
		logger.debug("failed to destroy %s session", label, exc_info=True)


__all__ = [
    "build_session_config",
    "build_message_options",
    "send_and_collect",
    "abort_session_safe",
    "destroy_session_safe",
]
