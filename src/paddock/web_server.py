"""FastAPI monitor server: hosts the coordinator daemon, the cleanup loop and the REST surface."""

from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from paddock.cleanup import CleanupLoop
from paddock.config import CLEANUP_INTERVAL_SECONDS, SOCKET_PATH, read_config, set_session_timeout
from paddock.daemon import CoordinatorDaemon
from paddock.daemon_client import is_daemon_reachable
from paddock.display_order import DIRECTIONS
from paddock.session_state import InvalidEventError
from paddock.store import StoreService

log = logging.getLogger(__name__)

settings: dict[str, Any] = {
    "daemon": True,
    "cleanup": True,
    "cleanup_interval": CLEANUP_INTERVAL_SECONDS,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the coordinator daemon and the cleanup loop for the lifetime of the server."""
    daemon = None
    if settings["daemon"]:
        daemon = CoordinatorDaemon(service, SOCKET_PATH)
        await daemon.start()
    loop = None
    if settings["cleanup"]:
        loop = CleanupLoop(service, interval=settings["cleanup_interval"])
        loop.start()
    app.state.cleanup_loop = loop

    yield

    if loop is not None:
        loop.stop()
    if daemon is not None:
        await daemon.stop()
    service.flush()


app = FastAPI(title="paddock", lifespan=lifespan)
service = StoreService()


def _session_entry(session: dict[str, Any]) -> dict[str, Any]:
    return {**session, "project_id": service.project_of(session["session_id"])}


def _cleanup_loop() -> CleanupLoop:
    loop = getattr(app.state, "cleanup_loop", None)
    if loop is None:
        loop = CleanupLoop(service)
        app.state.cleanup_loop = loop
    return loop


# ── Sessions ────────────────────────────────────────────────────────────────


@app.get("/api/sessions")
async def list_sessions():
    """List tracked sessions in display order."""
    return [_session_entry(s) for s in service.list_sessions()]


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str):
    session = service.get_session(session_id)
    if session is None:
        return {"error": f"Session '{session_id}' not found"}
    return _session_entry(session)


@app.delete("/api/sessions/{session_id}")
async def remove_session(session_id: str):
    if not service.remove_session(session_id):
        return {"error": f"Session '{session_id}' not found"}
    return {"ok": True}


@app.post("/api/events")
async def apply_event(body: dict):
    """Apply a hook event directly (same validation as the hook entry point)."""
    try:
        session = service.apply_event(body)
    except InvalidEventError as e:
        return {"error": str(e), "field": e.field}
    return {"ok": True, "session": session}


@app.post("/api/sessions/{session_id}/move")
async def move_session(session_id: str, body: dict):
    direction = body.get("direction")
    if direction not in DIRECTIONS:
        return {"error": "direction must be 'up' or 'down'"}
    return {"ok": service.move_session(session_id, direction)}


@app.put("/api/sessions/{session_id}/project")
async def assign_session(session_id: str, body: dict):
    """Move a session under a project header; a null project_id means ungrouped."""
    project_id = body.get("project_id") or None
    if not service.assign_to_project(session_id, project_id):
        return {"error": f"Session '{session_id}' not found"}
    return {"ok": True, "project_id": service.project_of(session_id)}


# ── Projects ────────────────────────────────────────────────────────────────


@app.get("/api/projects")
async def list_projects():
    return service.list_projects()


@app.post("/api/projects")
async def create_project(body: dict):
    name = (body.get("name") or "").strip()
    if not name:
        return {"error": "name is required"}
    return service.create_project(name)


@app.delete("/api/projects/{project_id}")
async def delete_project(project_id: str):
    if not service.delete_project(project_id):
        return {"error": f"Project '{project_id}' not found"}
    return {"ok": True}


@app.post("/api/projects/{project_id}/reorder")
async def reorder_project(project_id: str, body: dict):
    direction = body.get("direction")
    if direction not in DIRECTIONS:
        return {"error": "direction must be 'up' or 'down'"}
    return {"ok": service.reorder_project(project_id, direction)}


# ── Store-wide ──────────────────────────────────────────────────────────────


@app.get("/api/display-order")
async def get_display_order():
    return service.get_display_order()


@app.post("/api/clear")
async def clear(body: dict):
    target = body.get("target")
    if target == "sessions":
        service.clear_sessions()
    elif target == "projects":
        service.clear_projects()
    elif target == "all":
        service.clear_all()
    else:
        return {"error": "target must be 'sessions', 'projects' or 'all'"}
    return {"ok": True}


@app.post("/api/cleanup")
async def run_cleanup():
    """Run one eviction pass now."""
    removed = await _cleanup_loop().run_once()
    if removed is None:
        return {"skipped": True, "removed": []}
    return {
        "skipped": False,
        "removed": [{"session_id": r.key, "reason": r.reason} for r in removed],
    }


@app.get("/api/daemon")
async def daemon_status():
    return {"reachable": await is_daemon_reachable(SOCKET_PATH), "socket_path": str(SOCKET_PATH)}


# ── Config ──────────────────────────────────────────────────────────────────


@app.get("/api/config")
async def get_config():
    return read_config(service.config_file)


@app.put("/api/config/session-timeout")
async def update_session_timeout(body: dict):
    """Set the idle timeout in minutes; 0 keeps sessions until their tty closes."""
    minutes = body.get("minutes")
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
        return {"error": "minutes must be a non-negative integer"}
    set_session_timeout(minutes, service.config_file)
    return {"ok": True, "sessionTimeoutMinutes": minutes}


# ── Entry Point ──────────────────────────────────────────────────────────────


def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="paddock monitor")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8421, help="Port to bind to (default: 8421)")
    parser.add_argument("--no-daemon", action="store_true", help="Don't start the coordinator daemon")
    parser.add_argument(
        "--cleanup-interval", type=float, default=CLEANUP_INTERVAL_SECONDS,
        help=f"Seconds between eviction passes (default: {CLEANUP_INTERVAL_SECONDS:g})",
    )
    parser.add_argument(
        "--session-timeout", type=int, metavar="MINUTES",
        help="Store a new idle timeout in config.json before starting (0 disables it)",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings["daemon"] = not args.no_daemon
    settings["cleanup_interval"] = args.cleanup_interval
    if args.session_timeout is not None:
        if args.session_timeout < 0:
            parser.error("--session-timeout must be a non-negative integer")
        set_session_timeout(args.session_timeout, service.config_file)
        log.info("Session timeout set to %d minutes", args.session_timeout)

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
