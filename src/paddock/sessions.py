"""Session records inside the store: applying hook events and display-field updates."""

from __future__ import annotations

import logging
from typing import Any, Optional

from paddock import display_order
from paddock.projects import create_project, find_project_by_name
from paddock.session_state import SESSION_END, SESSION_START, field_updates, next_status
from paddock.utils import later_iso, now_iso, parse_timestamp

log = logging.getLogger(__name__)

CODEX_SESSION_PREFIX = "codex-"
TEAM_PROJECT_PREFIX = "Team: "


def agent_for(session_id: str) -> str:
    return "codex" if session_id.startswith(CODEX_SESSION_PREFIX) else "claude"


def _remove_other_sessions_on_tty(
    store: dict[str, Any], session_id: str, tty: Optional[str],
) -> Optional[str]:
    """Purge stale sessions that share *tty*; return the first one's project for inheritance."""
    if not tty:
        return None
    inherited: Optional[str] = None
    sessions = store["sessions"]
    for key, session in list(sessions.items()):
        if key == session_id or session.get("tty") != tty:
            continue
        if inherited is None:
            inherited = display_order.project_of(store, key)
        log.info("Replacing stale session %s on %s with %s", key, tty, session_id)
        del sessions[key]
        display_order.remove_session(store, key)
    return inherited


def apply_event(
    store: dict[str, Any], event: dict[str, Any], now: Optional[str] = None,
) -> Optional[dict[str, Any]]:
    """Create or update the session named by a validated *event*.

    Returns the resulting session, or the removed one for ``SessionEnd``.
    """
    sessions = store.setdefault("sessions", {})
    key = event["session_id"]
    existing = sessions.get(key)
    kind = event["hook_event_name"]

    if kind == SESSION_END:
        # /clear keeps the same session id alive
        if event.get("reason") == "clear":
            return existing
        if existing is not None:
            del sessions[key]
            display_order.remove_session(store, key)
        return existing

    if kind == SESSION_START:
        log.info("SessionStart session=%s source=%s tty=%s", key, event.get("source"), event.get("tty"))

    now = now or now_iso()
    inherited_project: Optional[str] = None
    if existing is None and event.get("tty"):
        inherited_project = _remove_other_sessions_on_tty(store, key, event["tty"])

    fields = field_updates(event, existing)
    previous = existing or {}
    session: dict[str, Any] = {
        "session_id": key,
        "cwd": event.get("cwd") or previous.get("cwd", ""),
        "initial_cwd": previous.get("initial_cwd") or event.get("cwd", ""),
        "tty": event.get("tty") or previous.get("tty"),
        "agent": previous.get("agent") or agent_for(key),
        "status": next_status(kind, event.get("notification_type"), previous.get("status")),
        "created_at": previous.get("created_at") or now,
        "updated_at": later_iso(previous.get("updated_at"), now),
        **fields,
    }
    for field in ("lastMessage", "summary", "summary_transcript_size", "tmux_target", "tmux_pane_id"):
        if previous.get(field) is not None:
            session[field] = previous[field]
    for field in ("team_name", "agent_name"):
        value = event.get(field) or previous.get(field)
        if value:
            session[field] = value
    sessions[key] = {k: v for k, v in session.items() if v is not None}

    if existing is None:
        display_order.add_session(store, key)
        team = event.get("team_name")
        if team:
            name = TEAM_PROJECT_PREFIX + team
            project = find_project_by_name(store, name) or create_project(store, name)
            display_order.assign_to_project(store, key, project["id"])
        elif inherited_project:
            display_order.assign_to_project(store, key, inherited_project)

    return sessions[key]


def get_sessions(store: dict[str, Any]) -> list[dict[str, Any]]:
    """Sessions in display order; untracked ones trail, oldest first."""
    position = {key: i for i, key in enumerate(display_order.session_keys(store))}
    epoch = parse_timestamp("1970-01-01T00:00:00+00:00")

    def sort_key(item: tuple[str, dict[str, Any]]):
        key, session = item
        return (position.get(key, len(position)), parse_timestamp(session.get("created_at")) or epoch)

    return [session for _, session in sorted((store.get("sessions") or {}).items(), key=sort_key)]


def remove_session(store: dict[str, Any], key: str) -> bool:
    sessions = store.setdefault("sessions", {})
    removed = sessions.pop(key, None) is not None
    display_order.remove_session(store, key)
    return removed


def clear_sessions(store: dict[str, Any]) -> None:
    """Drop every session; project headers stay in place."""
    store["sessions"] = {}
    order = display_order.order_of(store)
    order[:] = [item for item in order if item.get("type") == "project"]
    store["updated_at"] = now_iso()


def update_last_message(
    store: dict[str, Any], session_id: str, message: str, updated_at: Optional[str] = None,
) -> bool:
    session = (store.get("sessions") or {}).get(session_id)
    if session is None or session.get("lastMessage") == message:
        return False
    session["lastMessage"] = message
    session["updated_at"] = later_iso(session.get("updated_at"), updated_at or now_iso())
    return True


def update_summary(
    store: dict[str, Any], session_id: str, summary: str, transcript_size: Optional[int] = None,
) -> bool:
    session = (store.get("sessions") or {}).get(session_id)
    if session is None:
        return False
    session["summary"] = summary
    if transcript_size is not None:
        session["summary_transcript_size"] = transcript_size
    return True


def set_tmux_target(
    store: dict[str, Any], session_id: str, target: str, pane_id: Optional[str] = None,
) -> bool:
    session = (store.get("sessions") or {}).get(session_id)
    if session is None:
        return False
    session["tmux_target"] = target
    if pane_id is not None:
        session["tmux_pane_id"] = pane_id
    return True
