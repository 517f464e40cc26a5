"""Tool-use events reported by agents, and parsing of agent results."""

from __future__ import annotations

import json
import os
import threading
from collections import deque
from typing import Any, Mapping

DEFAULT_MAX_ENTRIES = 8
_MAX_COMMAND_LENGTH = 200
_MAX_RESULT_LENGTH = 4000

_FILE_VERBS = {
    "edit": "Editing",
    "multiedit": "Editing",
    "write": "Writing",
    "read": "Reading",
}
_PATTERN_VERBS = {
    "glob": "Glob",
    "grep": "Grep",
}


def _raw_text(raw: Any) -> str:
    """Return raw JSON as text; decoded values are re-encoded compactly."""
    if raw is None:
        return ""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    if isinstance(raw, str):
        return raw
    try:
        return json.dumps(raw, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""


def _as_object(raw: Any) -> dict[str, Any]:
    """Decode raw JSON (or take a mapping) as an object; anything else is empty."""
    if isinstance(raw, Mapping):
        return dict(raw)
    text = _raw_text(raw)
    if not text:
        return {}
    try:
        decoded = json.loads(text)
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _string_field(obj: Mapping[str, Any], key: str) -> str:
    value = obj.get(key)
    return value if isinstance(value, str) else ""


def format_tool_event(tool_name: str, tool_input: Any) -> str:
    """Describe one tool use in a short line, or return "" for an unnamed tool.

    tool_input may be raw JSON text or bytes, or an already decoded mapping.
    """
    parsed = _as_object(tool_input)
    kind = tool_name.lower()
    if kind == "bash":
        command = _string_field(parsed, "command")
        if len(command) > _MAX_COMMAND_LENGTH:
            command = command[:_MAX_COMMAND_LENGTH] + "..."
        return "$ " + command
    if kind in _FILE_VERBS:
        file_path = _string_field(parsed, "file_path") or _string_field(parsed, "filePath")
        return f"{_FILE_VERBS[kind]} {file_path}"
    if kind in _PATTERN_VERBS:
        return f"{_PATTERN_VERBS[kind]} {_string_field(parsed, 'pattern')}"
    return tool_name


def extract_session_id(output: Any) -> str:
    """Return the session_id an agent reported in its output, or ""."""
    return _string_field(_as_object(output), "session_id")


def extract_result_text(output: Any) -> str:
    """Return the agent's result text, or the raw output cut to 4000 characters."""
    result = _string_field(_as_object(output), "result")
    if result:
        return result
    return _raw_text(output)[:_MAX_RESULT_LENGTH]


def append_event_to_log(log_path: str | os.PathLike[str], job_id: str, message: str) -> bool:
    """Append a tool event line to an existing job log file.

    The file is never created. Returns whether the line was written.
    """
    try:
        fd = os.open(os.fspath(log_path), os.O_WRONLY | os.O_APPEND)
    except OSError:
        return False
    with os.fdopen(fd, "a", encoding="utf-8") as handle:
        handle.write(f"[agent] [{job_id[:8]}] > {message}\n")
    return True


class HookLog:
    """Recent tool-use descriptions per job, keeping only the newest few."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._lock = threading.Lock()
        self._max_entries = max_entries
        self._events: dict[str, deque[str]] = {}

    def record(self, job_id: str, tool_name: str, tool_input: Any) -> str:
        """Format and store a tool event; return the message ("" if nothing was stored)."""
        message = format_tool_event(tool_name, tool_input)
        if message:
            with self._lock:
                entries = self._events.setdefault(job_id, deque(maxlen=self._max_entries))
                entries.append(message)
        return message

    def events(self, job_id: str) -> list[str]:
        """Return the stored events for a job, oldest first."""
        with self._lock:
            return list(self._events.get(job_id, ()))

    def snapshot(self) -> dict[str, list[str]]:
        """Return a copy of every job's stored events."""
        with self._lock:
            return {job_id: list(entries) for job_id, entries in self._events.items()}