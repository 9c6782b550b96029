"""
Streaming helpers for Copilot sessions.

Provides a `StreamCollector` that handles session events, accumulates
message and reasoning deltas, token usage and tool invocations, and
optionally forwards short progress snippets to a callback.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

from copilot.generated.session_events import SessionEventType

from webapp_eval.models.llm import ToolLogEntry
from webapp_eval.models.usage import Usage

ProgressCallback = Callable[[str, str], None]

_SNIPPET_LENGTH = 200


class StreamCollector:
	"""Collect streaming events into text, reasoning, usage and tool logs."""

	def __init__(
	    self,
	    label: str,
	    progress_cb: Optional[ProgressCallback] = None,
	    verbose: bool = False,
	) -> None:
		"""
		Initialize the stream collector.

		Parameters:
			label: Identifier passed to progress callbacks.
			progress_cb: Callback for progress updates.
			verbose: Whether to forward every delta to the callback.
		"""
		self.label = label
		self.progress_cb = progress_cb
		self.verbose = verbose
		self.chunks: List[str] = []
		self.reasoning_chunks: List[str] = []
		self.usage = Usage()
		self.errors: List[str] = []
		# toolCallId -> entry awaiting its completion event
		self._pending_tools: Dict[str, ToolLogEntry] = {}
		self.tool_logs: List[ToolLogEntry] = []

	def _emit(self, message: str) -> None:
		if self.progress_cb:
			self.progress_cb(self.label, message)

	def _handle_tool_event(self, event_type: SessionEventType,
	                       data: Any) -> None:
		tool_call_id = getattr(data, "tool_call_id", None)
		tool_name = getattr(data, "tool_name", None) or getattr(
		    data, "name", "")
		if event_type == SessionEventType.TOOL_EXECUTION_START:
			arguments = getattr(data, "arguments", None)
			if isinstance(arguments, str):
				try:
					arguments = json.loads(arguments)
				except (json.JSONDecodeError, TypeError):
					pass
			entry = ToolLogEntry(request={
			    "tool": tool_name,
			    "arguments": arguments
			})
			self.tool_logs.append(entry)
			if tool_call_id:
				self._pending_tools[tool_call_id] = entry
			if self.verbose:
				self._emit(f"tool: {tool_name}")
		elif event_type == SessionEventType.TOOL_EXECUTION_COMPLETE:
			entry = self._pending_tools.pop(tool_call_id, None)
			if entry is None:
				return
			error = getattr(data, "error", None)
			result = getattr(data, "result", None)
			entry.response = {
			    "success": getattr(data, "success", error is None),
			    "result": getattr(result, "content", result),
			    "error": str(error) if error else None,
			}

	def handler(self, event: Any) -> None:
		"""Handle a session event."""
		et = getattr(event, "type", None)
		data = getattr(event, "data", None)
		if et == SessionEventType.ASSISTANT_MESSAGE_DELTA:
			delta = (getattr(data, "delta_content", "") or "")
			self.chunks.append(delta)
			if self.verbose:
				snippet = delta.replace("\n", " ")[:_SNIPPET_LENGTH]
				if snippet:
					self._emit(f"delta: {snippet}")
		elif et == SessionEventType.ASSISTANT_MESSAGE:
			snippet = (getattr(data, "content", "") or "").replace("\n",
			                                                      " ").strip()
			if len(snippet) > _SNIPPET_LENGTH:
				snippet = snippet[:_SNIPPET_LENGTH] + "..."
			if snippet:
				self._emit(f"assistant: {snippet}")
		elif et == SessionEventType.ASSISTANT_REASONING_DELTA:
			self.reasoning_chunks.append(
			    getattr(data, "delta_content", "") or "")
		elif et == SessionEventType.ASSISTANT_REASONING:
			# full reasoning replaces any streamed partials
			content = getattr(data, "content", "") or ""
			if content:
				self.reasoning_chunks = [content]
		elif et == SessionEventType.ASSISTANT_USAGE:
			self.usage.merge_turn(
			    input_tokens=getattr(data, "input_tokens", 0) or 0,
			    output_tokens=getattr(data, "output_tokens", 0) or 0,
			    thinking_tokens=getattr(data, "reasoning_tokens", 0) or 0,
			)
		elif et in (
		    SessionEventType.TOOL_EXECUTION_START,
		    SessionEventType.TOOL_EXECUTION_COMPLETE,
		):
			self._handle_tool_event(et, data)
		elif et == SessionEventType.SESSION_ERROR:
			msg = getattr(data, "message", None) or str(data)
			self.errors.append(msg)
			self._emit(f"session_error: {msg}")

	@property
	def text(self) -> str:
		"""Concatenate collected deltas into a single string."""
		return "".join(self.chunks)

	@property
	def reasoning(self) -> str:
		return "".join(self.reasoning_chunks)


async def fetch_last_assistant_message(session: Any) -> Optional[str]:
	"""
	Fallback to retrieve the last assistant message from session messages.

	Parameters:
		session: The Copilot session object.

	Returns:
		Content of the last assistant message, or None.
	"""
	try:
		messages = await session.get_messages()
		for ev in reversed(messages):
			if getattr(ev, "type", None) == SessionEventType.ASSISTANT_MESSAGE:
				return getattr(getattr(ev, "data", None), "content", None)
	except Exception:
		return None
	return None


__all__ = [
    "StreamCollector",
    "ProgressCallback",
    "fetch_last_assistant_message",
]
