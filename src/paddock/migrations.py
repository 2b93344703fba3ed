"""Upgrade store documents written by older versions."""

from __future__ import annotations

import logging
from typing import Any

from paddock.display_order import UNGROUPED_PROJECT_ID, project_entry, session_entry
from paddock.utils import parse_timestamp

log = logging.getLogger(__name__)

_MAX_ORDER = float("inf")


def migrate_to_display_order(store: dict[str, Any]) -> bool:
    """Build ``displayOrder`` from the legacy per-session ``project``/``order`` fields."""
    if store.get("displayOrder"):
        return False

    sessions: dict[str, Any] = store.get("sessions") or {}
    projects: dict[str, Any] = store.get("projects") or {}

    def by_order(item: tuple[str, dict[str, Any]]):
        return item[1].get("order") or 0

    order = [project_entry(UNGROUPED_PROJECT_ID)]
    ungrouped = sorted(((k, s) for k, s in sessions.items() if not s.get("project")), key=by_order)
    order.extend(session_entry(k) for k, _ in ungrouped)

    def project_rank(project: dict[str, Any]):
        rank = project.get("order")
        if not isinstance(rank, (int, float)):
            rank = _MAX_ORDER
        return (rank, project.get("name", ""))

    ranked = sorted(projects.values(), key=project_rank)
    for project in ranked:
        order.append(project_entry(project["id"]))
        members = sorted(
            ((k, s) for k, s in sessions.items() if s.get("project") == project["id"]),
            key=by_order,
        )
        order.extend(session_entry(k) for k, _ in members)

    store["displayOrder"] = order
    for session in sessions.values():
        session.pop("project", None)
        session.pop("order", None)
    for project in projects.values():
        project.pop("order", None)

    log.info("Migrated store to displayOrder (%d projects, %d ungrouped sessions)",
             len(ranked), len(ungrouped))
    return True


def migrate_session_keys(store: dict[str, Any]) -> bool:
    """Re-key ``session_id:tty`` sessions by ``session_id``; the newest duplicate wins."""
    old_sessions: dict[str, Any] = store.get("sessions") or {}
    if not any(":" in key for key in old_sessions):
        return False

    new_sessions: dict[str, Any] = {}
    key_mapping: dict[str, str] = {}
    for old_key, session in old_sessions.items():
        if ":" not in old_key:
            new_sessions[old_key] = session
            continue
        new_key = session.get("session_id") or old_key.split(":", 1)[0]
        current = new_sessions.get(new_key)
        if current is not None:
            newer = parse_timestamp(session.get("updated_at"))
            older = parse_timestamp(current.get("updated_at"))
            if newer is None or (older is not None and newer <= older):
                continue
        new_sessions[new_key] = session
        key_mapping[old_key] = new_key

    if store.get("displayOrder"):
        seen: set[str] = set()
        migrated = []
        for item in store["displayOrder"]:
            if item.get("type") == "session":
                key = key_mapping.get(item["key"], item["key"].split(":", 1)[0])
                if key in seen:
                    continue
                seen.add(key)
                item = session_entry(key)
            migrated.append(item)
        store["displayOrder"] = migrated

    store["sessions"] = new_sessions
    log.info("Migrated %d session keys to session_id-only form", len(key_mapping))
    return True


def migrate_remove_assigned_cwds(store: dict[str, Any]) -> bool:
    changed = False
    for project in (store.get("projects") or {}).values():
        if "assignedCwds" in project:
            del project["assignedCwds"]
            changed = True
    return changed


def run_migrations(store: dict[str, Any]) -> bool:
    """Apply every migration in order. Returns True if the document changed."""
    changed = migrate_to_display_order(store)
    changed = migrate_session_keys(store) or changed
    changed = migrate_remove_assigned_cwds(store) or changed
    return changed
