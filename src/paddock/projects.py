"""Project records and the display-order moves that create or dissolve them."""

from __future__ import annotations

import uuid
from typing import Any

from paddock.display_order import (
    UNGROUPED_PROJECT_ID,
    block_end,
    find_header,
    header_ids,
    order_of,
    project_entry,
    session_entry,
    session_keys,
)
from paddock.utils import now_iso


def _new_project_id(projects: dict[str, Any]) -> str:
    while True:
        project_id = uuid.uuid4().hex[:8]
        if project_id not in projects:
            return project_id


def create_project(store: dict[str, Any], name: str) -> dict[str, Any]:
    """Create a project whose header lands just above ungrouped."""
    projects = store.setdefault("projects", {})
    project_id = _new_project_id(projects)
    project = {"id": project_id, "name": name, "created_at": now_iso()}
    projects[project_id] = project

    order = order_of(store)
    ungrouped = find_header(order, UNGROUPED_PROJECT_ID)
    if ungrouped == -1:
        order.append(project_entry(project_id))
        order.append(project_entry(UNGROUPED_PROJECT_ID))
    else:
        order.insert(ungrouped, project_entry(project_id))
    return project


def find_project_by_name(store: dict[str, Any], name: str) -> dict[str, Any] | None:
    for project in (store.get("projects") or {}).values():
        if project.get("name") == name:
            return project
    return None


def list_projects(store: dict[str, Any]) -> list[dict[str, Any]]:
    """Projects in header order; projects without a header sort last by name."""
    projects = store.get("projects") or {}
    position = {pid: i for i, pid in enumerate(header_ids(store))}
    return sorted(
        projects.values(),
        key=lambda p: (position.get(p["id"], len(position)), p.get("name", "")),
    )


def delete_project(store: dict[str, Any], project_id: str) -> bool:
    """Delete a project; its sessions join the end of the ungrouped group as one run."""
    if project_id == UNGROUPED_PROJECT_ID:
        return False
    projects = store.setdefault("projects", {})
    order = order_of(store)
    start = find_header(order, project_id)
    if project_id not in projects and start == -1:
        return False
    projects.pop(project_id, None)
    if start == -1:
        return True

    end = block_end(order, start)
    members = order[start + 1:end]
    del order[start:end]

    ungrouped = find_header(order, UNGROUPED_PROJECT_ID)
    if ungrouped == -1:
        order.append(project_entry(UNGROUPED_PROJECT_ID))
        ungrouped = len(order) - 1
    insert_at = block_end(order, ungrouped)
    order[insert_at:insert_at] = members
    return True


def clear_all_projects(store: dict[str, Any]) -> bool:
    """Remove every named project; all sessions become ungrouped in their current order."""
    before = list(order_of(store))
    had_projects = bool(store.get("projects"))
    keys = session_keys(store)
    store["projects"] = {}
    store["displayOrder"] = [project_entry(UNGROUPED_PROJECT_ID)] + [session_entry(k) for k in keys]
    return had_projects or store["displayOrder"] != before
