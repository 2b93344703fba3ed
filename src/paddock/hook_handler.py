"""CLI entry point for Claude Code hooks: ``paddock-hook <EventName>`` with hook JSON on stdin."""

import asyncio
import json
import os
import sys
from pathlib import Path

from paddock.config import HOOK_DEBUG_DIR, SOCKET_PATH
from paddock.daemon_client import submit
from paddock.protocol import HOOK_EVENT
from paddock.session_state import HOOK_EVENTS, InvalidEventError, validate_event
from paddock.store import StoreService
from paddock.tty import detect_tty


def _debug_log(msg: str) -> None:
    if not os.environ.get("PADDOCK_HOOK_DEBUG"):
        return
    try:
        os.makedirs(HOOK_DEBUG_DIR, exist_ok=True)
        with open(os.path.join(HOOK_DEBUG_DIR, "debug.log"), "a") as f:
            f.write(msg + "\n")
    except OSError:
        pass


def build_event(event_name: str, raw: str, tty: str | None) -> dict:
    """Parse stdin JSON for *event_name* into a validated event. Raises InvalidEventError."""
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise InvalidEventError("payload", "invalid JSON input") from e
    if not isinstance(payload, dict):
        raise InvalidEventError("payload", "must be a JSON object")
    payload = dict(payload)
    payload["hook_event_name"] = event_name
    if tty and not payload.get("tty"):
        payload["tty"] = tty
    return validate_event(payload)


async def handle_hook_event(
    event_name: str,
    raw: str,
    service: StoreService | None = None,
    socket_path: Path = SOCKET_PATH,
) -> str:
    """Validate the hook payload and hand it to the daemon (or write it directly)."""
    if event_name not in HOOK_EVENTS:
        raise InvalidEventError("hook_event_name", f"unknown event {event_name!r}")
    tty = await detect_tty()
    event = build_event(event_name, raw, tty)
    via = await submit({"type": HOOK_EVENT, "payload": event}, service or StoreService(), socket_path)
    _debug_log(f"DONE: session={event['session_id']} event={event_name} tty={tty} via={via}")
    return via


def main():
    if len(sys.argv) < 2:
        print("usage: paddock-hook <EventName>", file=sys.stderr)
        sys.exit(1)
    event_name = sys.argv[1]
    raw = sys.stdin.read()
    _debug_log(f"HOOK INPUT {event_name}: {raw[:500]}")
    try:
        asyncio.run(handle_hook_event(event_name, raw))
    except ValueError as e:
        # Invalid event, or a request both the daemon and the direct write rejected
        print(str(e), file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        _debug_log(f"ERROR: {e!r}")  # Never block the agent


if __name__ == "__main__":
    main()
