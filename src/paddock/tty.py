"""Terminal device liveness checks and controlling-tty detection."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from typing import Callable, Optional

from paddock.config import MAX_TTY_CACHE_SIZE, TTY_CACHE_TTL_SECONDS
from paddock.utils import run_cmd

log = logging.getLogger(__name__)

MAX_ANCESTOR_DEPTH = 5
TTY_PATH_RE = re.compile(r"^/dev/(pts/\d+|tty\d+|ttys\d+)$")


def _stat_alive(tty: str) -> bool:
    try:
        os.stat(tty)
    except (OSError, ValueError):
        return False
    return True


class TtyLivenessCache:
    """Caches ``stat`` results per tty path for a short TTL.

    Eviction is FIFO by insertion order once ``max_size`` is exceeded, so a
    still-hot entry may occasionally be dropped before a cold one.
    """

    def __init__(
        self,
        ttl: float = TTY_CACHE_TTL_SECONDS,
        max_size: int = MAX_TTY_CACHE_SIZE,
        clock: Callable[[], float] = time.monotonic,
        checker: Callable[[str], bool] = _stat_alive,
    ) -> None:
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock
        self._checker = checker
        self._entries: dict[str, tuple[bool, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tty: object) -> bool:
        return tty in self._entries

    def _cached(self, tty: str, now: float) -> Optional[bool]:
        entry = self._entries.get(tty)
        if entry is not None and now - entry[1] < self._ttl:
            return entry[0]
        return None

    def _store(self, tty: str, alive: bool, now: float) -> None:
        # Re-insert so a refreshed entry moves to the back of the FIFO.
        self._entries.pop(tty, None)
        self._entries[tty] = (alive, now)
        while len(self._entries) > self._max_size:
            del self._entries[next(iter(self._entries))]

    def _check(self, tty: str) -> bool:
        try:
            return self._checker(tty)
        except Exception:
            log.debug("tty check failed for %s", tty, exc_info=True)
            return False

    def is_alive(self, tty: Optional[str]) -> bool:
        """True if *tty* still exists. Unknown terminals count as alive."""
        if not tty:
            return True
        now = self._clock()
        cached = self._cached(tty, now)
        if cached is not None:
            return cached
        alive = self._check(tty)
        self._store(tty, alive, now)
        return alive

    async def is_alive_async(self, tty: Optional[str]) -> bool:
        if not tty:
            return True
        now = self._clock()
        cached = self._cached(tty, now)
        if cached is not None:
            return cached
        alive = await asyncio.to_thread(self._check, tty)
        self._store(tty, alive, now)
        return alive

    def clear(self) -> None:
        self._entries.clear()


def _tty_from_fds() -> Optional[str]:
    for fd in (0, 1, 2):
        try:
            target = os.readlink(f"/proc/self/fd/{fd}")
        except OSError:
            continue
        if TTY_PATH_RE.match(target):
            return target
    return None


async def detect_tty() -> Optional[str]:
    """Find the controlling terminal of this hook process.

    Hooks run with piped stdio, so fall back to walking ancestor processes
    with ``ps`` until one reports a tty.
    """
    tty = _tty_from_fds()
    if tty:
        return tty

    pid = os.getppid()
    for _ in range(MAX_ANCESTOR_DEPTH):
        rc, out, _err = await run_cmd("ps", "-o", "tty=,ppid=", "-p", str(pid), timeout=2)
        if rc != 0 or not out:
            return None
        parts = out.split()
        name = parts[0] if parts else ""
        if name and name not in ("?", "??"):
            return f"/dev/{name}"
        if len(parts) < 2 or not parts[1].isdigit():
            return None
        pid = int(parts[1])
    return None
