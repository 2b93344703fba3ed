"""Debounced JSON persistence for the session store.

A StoreCache holds at most one in-memory store snapshot. Bursts of
``schedule_write`` calls collapse into a single disk write of the last
snapshot once the debounce timer fires, or when ``flush`` is called.
Short-lived processes must call ``flush`` before exiting.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from paddock.config import STORE_FILE, WRITE_DEBOUNCE_SECONDS, ensure_dir
from paddock.display_order import empty_store, reconcile
from paddock.migrations import run_migrations
from paddock.utils import now_iso

log = logging.getLogger(__name__)


def _is_store_document(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get("sessions"), dict)


class StoreCache:
    """Debounced read/write layer over one store file."""

    def __init__(self, store_file: Path = STORE_FILE, debounce: float = WRITE_DEBOUNCE_SECONDS) -> None:
        self._store_file = Path(store_file)
        self._debounce = debounce
        self._snapshot: Optional[dict[str, Any]] = None
        self._fingerprint: Optional[tuple[int, int]] = None
        self._pending = False
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def store_file(self) -> Path:
        return self._store_file

    @property
    def pending(self) -> bool:
        return self._pending

    def _file_fingerprint(self) -> Optional[tuple[int, int]]:
        try:
            st = self._store_file.stat()
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def read(self) -> dict[str, Any]:
        """Return the current store, loading from disk only when the cache is stale."""
        if self._snapshot is not None:
            if self._pending or self._fingerprint == self._file_fingerprint():
                return self._snapshot
        self._snapshot = self._load()
        self._fingerprint = self._file_fingerprint()
        return self._snapshot

    def _load(self) -> dict[str, Any]:
        if not self._store_file.exists():
            return empty_store()
        try:
            data = json.loads(self._store_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("Store file %s is unreadable, starting empty: %s", self._store_file, e)
            return empty_store()
        if not _is_store_document(data):
            log.warning("Store file %s has an unexpected shape, starting empty", self._store_file)
            return empty_store()
        data.setdefault("projects", {})
        data.setdefault("updated_at", now_iso())
        run_migrations(data)
        reconcile(data)
        return data

    def schedule_write(self, store: dict[str, Any]) -> None:
        """Replace the snapshot with *store* and restart the debounce timer."""
        self._snapshot = store
        self._pending = True
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the write stays pending until flush().
            return
        self._timer = loop.call_later(self._debounce, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self.flush()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def flush(self) -> bool:
        """Write a pending snapshot now. Returns True if the disk was written."""
        self._cancel_timer()
        if not self._pending or self._snapshot is None:
            return False
        try:
            self._write_snapshot(self._snapshot)
        except OSError as e:
            # Keep the snapshot pending so the next flush retries.
            log.warning("Failed to write store file %s: %s", self._store_file, e)
            return False
        self._pending = False
        self._fingerprint = self._file_fingerprint()
        return True

    def _write_snapshot(self, store: dict[str, Any]) -> None:
        ensure_dir(self._store_file.parent)
        store["updated_at"] = now_iso()
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._store_file.parent), prefix=".sessions-", suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(store, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self._store_file)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def reset(self) -> None:
        """Forget the snapshot and any pending write without touching disk."""
        self._cancel_timer()
        self._snapshot = None
        self._fingerprint = None
        self._pending = False
