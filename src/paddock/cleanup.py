"""Evict sessions whose terminal is gone or that have been idle too long."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from paddock import display_order
from paddock.config import CLEANUP_INTERVAL_SECONDS, ensure_dir, get_session_timeout_seconds
from paddock.store import StoreService
from paddock.tty import TtyLivenessCache
from paddock.utils import now_iso, parse_timestamp

log = logging.getLogger(__name__)

TIMEOUT = "timeout"
TTY_CLOSED = "tty_closed"


@dataclass
class CleanupResult:
    key: str
    session: dict[str, Any]
    should_remove: bool
    reason: Optional[str] = None
    elapsed: Optional[float] = None


async def check_sessions_for_cleanup(
    store: dict[str, Any],
    timeout_seconds: float,
    liveness: TtyLivenessCache,
    now: Optional[datetime] = None,
) -> list[CleanupResult]:
    """Evaluate both eviction conditions for every session.

    A closed tty outranks a timeout as the reported reason. A timeout of 0
    disables the idle check. Sessions with unparsable timestamps are kept.
    """
    now = now or datetime.now(timezone.utc)
    results = []
    for key, session in list((store.get("sessions") or {}).items()):
        updated = parse_timestamp(session.get("updated_at"))
        if updated is None:
            results.append(CleanupResult(key, session, False))
            continue
        elapsed = (now - updated).total_seconds()
        timed_out = timeout_seconds > 0 and elapsed > timeout_seconds
        tty_alive = await liveness.is_alive_async(session.get("tty"))

        reason = None
        if not tty_alive:
            reason = TTY_CLOSED
        elif timed_out:
            reason = TIMEOUT
        results.append(CleanupResult(key, session, reason is not None, reason, elapsed))
    return results


def log_deletion(log_file: Path, result: CleanupResult) -> None:
    """Append one JSON line describing an eviction to the audit log."""
    session = result.session
    if result.reason == TTY_CLOSED:
        details: dict[str, Any] = {"tty": session.get("tty")}
    else:
        details = {"elapsed": result.elapsed}
    entry = {
        "timestamp": now_iso(),
        "session_id": session.get("session_id", result.key),
        "cwd": session.get("cwd"),
        "tty": session.get("tty"),
        "reason": result.reason,
        "details": details,
        "last_updated": session.get("updated_at"),
    }
    try:
        ensure_dir(log_file.parent)
        with open(log_file, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError as e:
        log.warning("Could not append to deletion log %s: %s", log_file, e)


async def cleanup_stale_sessions(
    service: StoreService,
    liveness: TtyLivenessCache,
    timeout_seconds: Optional[float] = None,
    now: Optional[datetime] = None,
) -> list[CleanupResult]:
    """Remove every session flagged by check_sessions_for_cleanup. Returns the removed ones.

    Runs under ``service.lock`` so daemon requests wait for the pass. The
    liveness checks await, so removals go to a fresh snapshot, and a session
    whose ``updated_at`` moved since it was checked is left alone.
    """
    if timeout_seconds is None:
        timeout_seconds = get_session_timeout_seconds(service.config_file)
    async with service.lock:
        results = await check_sessions_for_cleanup(service.read(), timeout_seconds, liveness, now)

        store = service.read()
        sessions = store.get("sessions") or {}
        removed = []
        for result in results:
            if not result.should_remove:
                continue
            current = sessions.get(result.key)
            if current is None or current.get("updated_at") != result.session.get("updated_at"):
                continue
            log_deletion(service.deletion_log, result)
            del sessions[result.key]
            display_order.remove_session(store, result.key)
            removed.append(result)
            log.info("Removed session %s (%s)", result.key, result.reason)

        if removed:
            service.write(store)
    return removed


class CleanupLoop:
    """Runs cleanup_stale_sessions on a fixed interval.

    Several owners may start the loop; it keeps running until each of them
    has called stop(). A tick that fires while a pass is still running is
    skipped.
    """

    def __init__(
        self,
        service: StoreService,
        interval: float = CLEANUP_INTERVAL_SECONDS,
        liveness: Optional[TtyLivenessCache] = None,
    ) -> None:
        self._service = service
        self._interval = interval
        self._liveness = liveness if liveness is not None else TtyLivenessCache()
        self._owners = 0
        self._task: Optional[asyncio.Task] = None
        self._in_progress = False

    @property
    def owners(self) -> int:
        return self._owners

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[list[CleanupResult]]:
        """Run one pass. Returns None if a pass was already in progress."""
        if self._in_progress:
            return None
        self._in_progress = True
        try:
            return await cleanup_stale_sessions(self._service, self._liveness)
        finally:
            self._in_progress = False

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception:
                log.exception("Cleanup pass failed")

    def start(self) -> None:
        self._owners += 1
        if self.running:
            return
        self._task = asyncio.create_task(self.run_forever())

    def stop(self) -> None:
        if self._owners > 0:
            self._owners -= 1
        if self._owners > 0 or self._task is None:
            return
        self._task.cancel()
        self._task = None
