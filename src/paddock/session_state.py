"""Hook event validation and the session status state machine."""

from __future__ import annotations

import os
from typing import Any, Optional

RUNNING = "running"
WAITING_INPUT = "waiting_input"
STOPPED = "stopped"
STATUSES = (RUNNING, WAITING_INPUT, STOPPED)

SESSION_START = "SessionStart"
USER_PROMPT_SUBMIT = "UserPromptSubmit"
PRE_TOOL_USE = "PreToolUse"
POST_TOOL_USE = "PostToolUse"
NOTIFICATION = "Notification"
STOP = "Stop"
SESSION_END = "SessionEnd"

HOOK_EVENTS = (
    SESSION_START,
    USER_PROMPT_SUBMIT,
    PRE_TOOL_USE,
    POST_TOOL_USE,
    NOTIFICATION,
    STOP,
    SESSION_END,
)

PERMISSION_PROMPT = "permission_prompt"

OPTIONAL_STRING_FIELDS = (
    "cwd",
    "tty",
    "notification_type",
    "prompt",
    "tool_name",
    "source",
    "reason",
    "team_name",
    "agent_name",
)


class InvalidEventError(ValueError):
    """Raised when a hook event fails validation. ``field`` names the offending key."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"Invalid {field}: {message}")
        self.field = field


def next_status(
    event_kind: str,
    notification_type: Optional[str] = None,
    previous_status: Optional[str] = None,
) -> str:
    """Return the status a session moves to when *event_kind* arrives.

    Events that leave the status unchanged fall back to ``running`` for a
    session seen for the first time. ``SessionEnd`` maps to ``stopped``; the
    caller is responsible for removing the session.
    """
    if event_kind not in HOOK_EVENTS:
        raise InvalidEventError("hook_event_name", f"unknown event {event_kind!r}")

    unchanged = previous_status if previous_status in STATUSES else RUNNING

    if event_kind in (SESSION_START, USER_PROMPT_SUBMIT, PRE_TOOL_USE):
        return RUNNING
    if event_kind == NOTIFICATION:
        if notification_type == PERMISSION_PROMPT:
            return WAITING_INPUT
        return unchanged
    if event_kind in (STOP, SESSION_END):
        return STOPPED
    return unchanged


def field_updates(event: dict[str, Any], existing: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Context fields (last_prompt, current_tool, notification_type) after *event*."""
    existing = existing or {}
    fields = {
        "last_prompt": existing.get("last_prompt"),
        "current_tool": existing.get("current_tool"),
        "notification_type": existing.get("notification_type"),
    }
    kind = event["hook_event_name"]

    if kind in (SESSION_START, STOP, SESSION_END):
        fields["current_tool"] = None
        fields["notification_type"] = None
    elif kind == USER_PROMPT_SUBMIT:
        if event.get("prompt") is not None:
            fields["last_prompt"] = event["prompt"]
        fields["notification_type"] = None
    elif kind == PRE_TOOL_USE:
        if event.get("tool_name") is not None:
            fields["current_tool"] = event["tool_name"]
    elif kind == POST_TOOL_USE:
        fields["current_tool"] = None
    elif kind == NOTIFICATION:
        if event.get("notification_type") is not None:
            fields["notification_type"] = event["notification_type"]
    return fields


def validate_event(raw: Any, cwd: Optional[str] = None) -> dict[str, Any]:
    """Check a raw hook payload and return a normalized event dict.

    Raises InvalidEventError naming the first field that fails. A missing
    ``cwd`` defaults to *cwd* or the current working directory.
    """
    if not isinstance(raw, dict):
        raise InvalidEventError("payload", "must be a JSON object")

    session_id = raw.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        raise InvalidEventError("session_id", "must be a non-empty string")

    kind = raw.get("hook_event_name")
    if kind not in HOOK_EVENTS:
        raise InvalidEventError("hook_event_name", f"must be one of {', '.join(HOOK_EVENTS)}")

    for field in OPTIONAL_STRING_FIELDS:
        value = raw.get(field)
        if value is not None and not isinstance(value, str):
            raise InvalidEventError(field, "must be a string")

    event = {"session_id": session_id, "hook_event_name": kind}
    for field in OPTIONAL_STRING_FIELDS:
        if raw.get(field) is not None:
            event[field] = raw[field]
    if not event.get("cwd"):
        event["cwd"] = cwd or os.getcwd()
    if not event.get("tty"):
        event.pop("tty", None)
    return event
