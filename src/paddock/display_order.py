"""Positional ordering of project headers and session entries.

The ``displayOrder`` list is the only record of both render order and project
membership: a session belongs to the nearest project header above it. The
ungrouped header (id ``""``) exists exactly once and is always the last
header, so "ungrouped" sessions are the trailing run of the list.

Every function here takes the store dict and mutates it in place. None of
them touch disk.
"""

from __future__ import annotations

from typing import Any, Optional

from paddock.utils import now_iso

UNGROUPED_PROJECT_ID = ""

UP = "up"
DOWN = "down"
DIRECTIONS = (UP, DOWN)


def project_entry(project_id: str) -> dict[str, str]:
    return {"type": "project", "id": project_id}


def session_entry(key: str) -> dict[str, str]:
    return {"type": "session", "key": key}


def _is_header(item: dict[str, Any], project_id: Optional[str] = None) -> bool:
    if item.get("type") != "project":
        return False
    return project_id is None or item.get("id") == project_id


def _is_session(item: dict[str, Any], key: Optional[str] = None) -> bool:
    if item.get("type") != "session":
        return False
    return key is None or item.get("key") == key


def order_of(store: dict[str, Any]) -> list[dict[str, str]]:
    order = store.get("displayOrder")
    if not order:
        order = [project_entry(UNGROUPED_PROJECT_ID)]
        store["displayOrder"] = order
    return order


def _find_session(order: list[dict[str, str]], key: str) -> int:
    for i, item in enumerate(order):
        if _is_session(item, key):
            return i
    return -1


def find_header(order: list[dict[str, str]], project_id: str) -> int:
    for i, item in enumerate(order):
        if _is_header(item, project_id):
            return i
    return -1


def block_end(order: list[dict[str, str]], header_index: int) -> int:
    """Index just past the session run that follows the header at *header_index*."""
    i = header_index + 1
    while i < len(order) and not _is_header(order[i]):
        i += 1
    return i


def _validate_direction(direction: str) -> None:
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")


def empty_store() -> dict[str, Any]:
    """A well-formed store with no sessions and no projects."""
    return {
        "sessions": {},
        "projects": {},
        "displayOrder": [project_entry(UNGROUPED_PROJECT_ID)],
        "updated_at": now_iso(),
    }


def get_display_order(store: dict[str, Any]) -> list[dict[str, str]]:
    return order_of(store)


def add_session(store: dict[str, Any], key: str) -> None:
    """Insert *key* at the top of the ungrouped group. No-op if already present."""
    order = order_of(store)
    if _find_session(order, key) != -1:
        return
    ungrouped = find_header(order, UNGROUPED_PROJECT_ID)
    if ungrouped == -1:
        order.append(project_entry(UNGROUPED_PROJECT_ID))
        ungrouped = len(order) - 1
    order.insert(ungrouped + 1, session_entry(key))


def remove_session(store: dict[str, Any], key: str) -> None:
    order = order_of(store)
    order[:] = [item for item in order if not _is_session(item, key)]


def project_of(store: dict[str, Any], key: str) -> Optional[str]:
    """Return the id of the project *key* belongs to, or None when ungrouped."""
    order = store.get("displayOrder") or []
    index = _find_session(order, key)
    if index == -1:
        return None
    for i in range(index - 1, -1, -1):
        if _is_header(order[i]):
            return order[i].get("id") or None
    return None


def assign_to_project(store: dict[str, Any], key: str, project_id: Optional[str]) -> None:
    """Move *key* directly under *project_id*'s header (ungrouped when absent or unknown)."""
    order = order_of(store)
    order[:] = [item for item in order if not _is_session(item, key)]

    target = find_header(order, project_id) if project_id else -1
    if target == -1:
        target = find_header(order, UNGROUPED_PROJECT_ID)
    if target == -1:
        order.append(project_entry(UNGROUPED_PROJECT_ID))
        target = len(order) - 1
    order.insert(target + 1, session_entry(key))


def move_session(store: dict[str, Any], key: str, direction: str) -> bool:
    """Swap *key* with its neighbour. Returns False and leaves the order alone if impossible."""
    _validate_direction(direction)
    order = order_of(store)
    current = _find_session(order, key)
    if current == -1:
        return False

    target = current - 1 if direction == UP else current + 1
    if target < 0 or target >= len(order):
        return False

    # There is no "no project" zone above the first header.
    if direction == UP and _is_header(order[target]):
        if not any(_is_header(item) for item in order[:target]):
            return False

    order[current], order[target] = order[target], order[current]
    return True


def reorder_project(store: dict[str, Any], project_id: str, direction: str) -> bool:
    """Move a project header and its sessions past the adjacent project block.

    Ungrouped never moves and nothing moves past it.
    """
    _validate_direction(direction)
    if project_id == UNGROUPED_PROJECT_ID:
        return False
    order = order_of(store)
    start = find_header(order, project_id)
    if start == -1:
        return False
    end = block_end(order, start)
    block = order[start:end]

    if direction == UP:
        previous = -1
        for j in range(start - 1, -1, -1):
            if _is_header(order[j]):
                previous = j
                break
        if previous == -1 or _is_header(order[previous], UNGROUPED_PROJECT_ID):
            return False
        del order[start:end]
        order[previous:previous] = block
        return True

    if end >= len(order) or _is_header(order[end], UNGROUPED_PROJECT_ID):
        return False
    next_end = block_end(order, end)
    order[next_end:next_end] = block
    del order[start:end]
    return True


def header_ids(store: dict[str, Any]) -> list[str]:
    """Named project ids in header order (ungrouped excluded)."""
    return [
        item["id"] for item in order_of(store)
        if _is_header(item) and item.get("id") != UNGROUPED_PROJECT_ID
    ]


def session_keys(store: dict[str, Any]) -> list[str]:
    return [item["key"] for item in order_of(store) if _is_session(item)]


def reconcile(store: dict[str, Any]) -> bool:
    """Repair the order against the session and project maps.

    Drops session entries that reference no session (and duplicates), drops
    empty headers that reference no project, keeps a header whose project
    record vanished as long as it still heads live sessions (restoring a
    placeholder record), gives header-less projects a header, appends
    untracked sessions to ungrouped, and re-establishes the single trailing
    ungrouped header. Returns True if anything changed.

    A header id present in the order only counts as a project while it
    still heads at least one session. An empty header whose record is gone
    is dropped rather than resurrected as an empty placeholder project.
    """
    sessions = store.setdefault("sessions", {})
    projects = store.setdefault("projects", {})
    before = list(store.get("displayOrder") or [])

    leading: list[str] = []
    blocks: list[tuple[str, list[str]]] = []
    seen_keys: set[str] = set()
    for item in before:
        if _is_header(item):
            blocks.append((item.get("id") or UNGROUPED_PROJECT_ID, []))
        elif _is_session(item):
            key = item.get("key")
            if key not in sessions or key in seen_keys:
                continue
            seen_keys.add(key)
            (blocks[-1][1] if blocks else leading).append(key)

    ungrouped_keys: list[str] = list(leading)
    named: dict[str, list[str]] = {}
    restored = False
    for project_id, keys in blocks:
        if project_id == UNGROUPED_PROJECT_ID:
            ungrouped_keys.extend(keys)
            continue
        if project_id not in projects:
            if not keys:
                continue
            projects[project_id] = {
                "id": project_id,
                "name": f"Project {project_id}",
                "created_at": now_iso(),
            }
            restored = True
        if project_id in named:
            named[project_id].extend(keys)
        else:
            named[project_id] = list(keys)

    for project in sorted(projects.values(), key=lambda p: p.get("created_at", "")):
        named.setdefault(project["id"], [])

    for key in sessions:
        if key not in seen_keys:
            ungrouped_keys.append(key)

    after: list[dict[str, str]] = []
    for project_id, keys in named.items():
        after.append(project_entry(project_id))
        after.extend(session_entry(k) for k in keys)
    after.append(project_entry(UNGROUPED_PROJECT_ID))
    after.extend(session_entry(k) for k in ungrouped_keys)

    store["displayOrder"] = after
    return restored or after != before
