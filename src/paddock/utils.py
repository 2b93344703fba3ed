"""Generic helpers shared across paddock."""

from __future__ import annotations

import asyncio
import subprocess
from datetime import datetime, timezone
from typing import Optional, Tuple


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware datetime, or None if unusable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def later_iso(previous: object, candidate: str) -> str:
    """Return *candidate* unless *previous* is a later timestamp (keeps updated_at non-decreasing)."""
    prev = parse_timestamp(previous)
    cand = parse_timestamp(candidate)
    if prev is not None and cand is not None and prev > cand:
        return str(previous)
    return candidate


async def run_cmd(*args: str, timeout: float | None = None) -> Tuple[int, str, str]:
    """Execute a subprocess command asynchronously.

    Returns:
        Tuple of (returncode, stdout, stderr).
    """
    proc = None
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

        if timeout is not None:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        else:
            stdout, stderr = await proc.communicate()

        return proc.returncode or 0, stdout.decode().strip(), stderr.decode().strip()
    except asyncio.TimeoutError:
        # If timeout, try to terminate the process
        if proc:
            try:
                proc.terminate()
                await asyncio.wait_for(proc.wait(), timeout=1.0)
            except (ProcessLookupError, asyncio.TimeoutError):
                pass
        return -1, "", "Command timed out"
    except OSError as e:
        return -1, "", str(e)
