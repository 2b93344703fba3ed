"""The read/write surface UI, web and CLI layers call.

StoreService owns one StoreCache plus the file paths for this process. Each
mutating method performs a single read-modify-schedule_write cycle.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

from paddock import display_order, projects, sessions
from paddock.config import CONFIG_FILE, DELETION_LOG, STORE_FILE
from paddock.session_state import validate_event
from paddock.write_cache import StoreCache

log = logging.getLogger(__name__)


class StoreService:
    """Session/project store backed by a debounced JSON file."""

    def __init__(
        self,
        store_file: Path = STORE_FILE,
        deletion_log: Path = DELETION_LOG,
        config_file: Path = CONFIG_FILE,
        cache: Optional[StoreCache] = None,
    ) -> None:
        self.cache = cache or StoreCache(store_file)
        self.deletion_log = Path(deletion_log)
        self.config_file = Path(config_file)
        # Held by any async caller whose read-modify-write spans an await.
        self.lock = asyncio.Lock()

    @property
    def store_file(self) -> Path:
        return self.cache.store_file

    def read(self) -> dict[str, Any]:
        return self.cache.read()

    def write(self, store: dict[str, Any]) -> None:
        self.cache.schedule_write(store)

    def flush(self) -> bool:
        return self.cache.flush()

    # ── Sessions ────────────────────────────────────────────────────────────

    def apply_event(self, event: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Validate and apply a hook event. Raises InvalidEventError before any mutation."""
        event = validate_event(event)
        store = self.read()
        session = sessions.apply_event(store, event)
        self.write(store)
        return session

    def list_sessions(self) -> list[dict[str, Any]]:
        """Sessions in display order, after repairing the order."""
        store = self.read()
        if display_order.reconcile(store):
            log.info("Reconciled display order")
            self.write(store)
        return sessions.get_sessions(store)

    def get_session(self, session_id: str) -> Optional[dict[str, Any]]:
        return (self.read().get("sessions") or {}).get(session_id)

    def remove_session(self, session_id: str) -> bool:
        store = self.read()
        removed = sessions.remove_session(store, session_id)
        self.write(store)
        return removed

    def clear_sessions(self) -> None:
        store = self.read()
        sessions.clear_sessions(store)
        self.write(store)

    def update_last_message(self, session_id: str, message: str, updated_at: Optional[str] = None) -> bool:
        store = self.read()
        changed = sessions.update_last_message(store, session_id, message, updated_at)
        if changed:
            self.write(store)
        return changed

    def update_summary(self, session_id: str, summary: str, transcript_size: Optional[int] = None) -> bool:
        store = self.read()
        changed = sessions.update_summary(store, session_id, summary, transcript_size)
        if changed:
            self.write(store)
        return changed

    def set_tmux_target(self, session_id: str, target: str, pane_id: Optional[str] = None) -> bool:
        store = self.read()
        changed = sessions.set_tmux_target(store, session_id, target, pane_id)
        if changed:
            self.write(store)
        return changed

    # ── Projects ────────────────────────────────────────────────────────────

    def create_project(self, name: str) -> dict[str, Any]:
        store = self.read()
        project = projects.create_project(store, name)
        self.write(store)
        return project

    def list_projects(self) -> list[dict[str, Any]]:
        return projects.list_projects(self.read())

    def delete_project(self, project_id: str) -> bool:
        store = self.read()
        deleted = projects.delete_project(store, project_id)
        if deleted:
            self.write(store)
        return deleted

    def clear_projects(self) -> None:
        store = self.read()
        projects.clear_all_projects(store)
        self.write(store)

    def clear_all(self) -> None:
        store = self.read()
        sessions.clear_sessions(store)
        projects.clear_all_projects(store)
        self.write(store)

    def reorder_project(self, project_id: str, direction: str) -> bool:
        store = self.read()
        moved = display_order.reorder_project(store, project_id, direction)
        if moved:
            self.write(store)
        return moved

    # ── Display order ───────────────────────────────────────────────────────

    def get_display_order(self) -> list[dict[str, str]]:
        return list(display_order.get_display_order(self.read()))

    def project_of(self, session_id: str) -> Optional[str]:
        return display_order.project_of(self.read(), session_id)

    def assign_to_project(self, session_id: str, project_id: Optional[str]) -> bool:
        store = self.read()
        if session_id not in (store.get("sessions") or {}):
            return False
        display_order.assign_to_project(store, session_id, project_id)
        self.write(store)
        return True

    def move_session(self, session_id: str, direction: str) -> bool:
        store = self.read()
        moved = display_order.move_session(store, session_id, direction)
        if moved:
            self.write(store)
        return moved

    def reconcile(self) -> bool:
        store = self.read()
        changed = display_order.reconcile(store)
        if changed:
            self.write(store)
        return changed
