"""Coordinator wire protocol: newline-delimited JSON request/response pairs."""

from __future__ import annotations

import json
import logging
from typing import Any

from paddock.session_state import InvalidEventError
from paddock.store import StoreService

log = logging.getLogger(__name__)

HOOK_EVENT = "hookEvent"
CLEAR_SESSIONS = "clearSessions"
CLEAR_ALL = "clearAll"
CLEAR_PROJECTS = "clearProjects"
REQUEST_TYPES = (HOOK_EVENT, CLEAR_SESSIONS, CLEAR_ALL, CLEAR_PROJECTS)

# Hook prompts can be long; stay well above asyncio's 64 KiB default.
MAX_LINE_BYTES = 4 * 1024 * 1024


def encode(message: dict[str, Any]) -> bytes:
    return json.dumps(message).encode() + b"\n"


def decode(line: bytes) -> Any:
    return json.loads(line.decode())


def ok() -> dict[str, Any]:
    return {"ok": True}


def error(message: str) -> dict[str, Any]:
    return {"ok": False, "error": message}


def apply_request(service: StoreService, request: Any) -> dict[str, Any]:
    """Apply one request to *service* and return the response dict. Never raises."""
    if not isinstance(request, dict):
        return error("request must be a JSON object")
    kind = request.get("type")
    try:
        if kind == HOOK_EVENT:
            payload = request.get("payload")
            if not payload:
                return error("missing payload for hookEvent")
            service.apply_event(payload)
        elif kind == CLEAR_SESSIONS:
            service.clear_sessions()
        elif kind == CLEAR_ALL:
            service.clear_all()
        elif kind == CLEAR_PROJECTS:
            service.clear_projects()
        else:
            return error(f"unknown request type: {kind}")
    except InvalidEventError as e:
        return error(str(e))
    except Exception as e:
        log.warning("Request %s failed: %s", kind, e)
        return error(str(e))
    return ok()
