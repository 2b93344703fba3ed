"""Tests for the monitor REST API."""

import json
import sys

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import paddock.web_server as ws
from paddock.store import StoreService


@pytest.fixture
def service(tmp_path, monkeypatch):
    svc = StoreService(
        store_file=tmp_path / "sessions.json",
        deletion_log=tmp_path / "deletion.log",
        config_file=tmp_path / "config.json",
    )
    monkeypatch.setattr(ws, "service", svc)
    monkeypatch.setattr(ws.app.state, "cleanup_loop", None, raising=False)
    return svc


@pytest_asyncio.fixture
async def client(service):
    transport = ASGITransport(app=ws.app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _start(client, session_id, **fields):
    body = {"session_id": session_id, "hook_event_name": "SessionStart", "cwd": "/work"}
    body.update(fields)
    resp = await client.post("/api/events", json=body)
    assert resp.json()["ok"] is True
    return resp.json()["session"]


# ── Sessions ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_events_create_sessions(client):
    session = await _start(client, "s1", tty="/dev/ttys001")
    assert session["status"] == "running"

    resp = await client.get("/api/sessions")
    assert [s["session_id"] for s in resp.json()] == ["s1"]
    assert resp.json()[0]["project_id"] is None


@pytest.mark.asyncio
async def test_invalid_event_reports_field(client):
    resp = await client.post("/api/events", json={"hook_event_name": "Stop"})
    assert resp.json()["field"] == "session_id"
    assert resp.json()["error"].startswith("Invalid session_id")


@pytest.mark.asyncio
async def test_get_and_delete_session(client):
    await _start(client, "s1")
    assert (await client.get("/api/sessions/s1")).json()["cwd"] == "/work"
    assert (await client.delete("/api/sessions/s1")).json() == {"ok": True}
    assert "error" in (await client.get("/api/sessions/s1")).json()
    assert "error" in (await client.delete("/api/sessions/s1")).json()


@pytest.mark.asyncio
async def test_move_session(client):
    await _start(client, "a")
    await _start(client, "b")
    assert (await client.post("/api/sessions/b/move", json={"direction": "up"})).json() == {"ok": False}
    assert (await client.post("/api/sessions/b/move", json={"direction": "down"})).json() == {"ok": True}
    order = [s["session_id"] for s in (await client.get("/api/sessions")).json()]
    assert order == ["a", "b"]
    assert "error" in (await client.post("/api/sessions/b/move", json={"direction": "left"})).json()


# ── Projects ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_project_lifecycle(client):
    await _start(client, "s1")
    project = (await client.post("/api/projects", json={"name": "api"})).json()
    assert project["name"] == "api"

    resp = await client.put("/api/sessions/s1/project", json={"project_id": project["id"]})
    assert resp.json() == {"ok": True, "project_id": project["id"]}
    assert (await client.get("/api/sessions/s1")).json()["project_id"] == project["id"]

    order = (await client.get("/api/display-order")).json()
    assert order == [
        {"type": "project", "id": project["id"]},
        {"type": "session", "key": "s1"},
        {"type": "project", "id": ""},
    ]

    assert (await client.delete(f"/api/projects/{project['id']}")).json() == {"ok": True}
    assert (await client.get("/api/projects")).json() == []
    assert (await client.get("/api/sessions/s1")).json()["project_id"] is None


@pytest.mark.asyncio
async def test_project_validation(client):
    assert "error" in (await client.post("/api/projects", json={"name": "  "})).json()
    assert "error" in (await client.delete("/api/projects/nope")).json()
    assert "error" in (await client.put("/api/sessions/ghost/project", json={"project_id": None})).json()


@pytest.mark.asyncio
async def test_reorder_projects(client):
    p1 = (await client.post("/api/projects", json={"name": "one"})).json()
    p2 = (await client.post("/api/projects", json={"name": "two"})).json()
    resp = await client.post(f"/api/projects/{p2['id']}/reorder", json={"direction": "up"})
    assert resp.json() == {"ok": True}
    names = [p["name"] for p in (await client.get("/api/projects")).json()]
    assert names == ["two", "one"]
    resp = await client.post(f"/api/projects/{p1['id']}/reorder", json={"direction": "down"})
    assert resp.json() == {"ok": False}


# ── Store-wide ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_clear_targets(client):
    await _start(client, "s1")
    await client.post("/api/projects", json={"name": "p"})

    assert (await client.post("/api/clear", json={"target": "projects"})).json() == {"ok": True}
    assert (await client.get("/api/projects")).json() == []
    assert len((await client.get("/api/sessions")).json()) == 1

    assert (await client.post("/api/clear", json={"target": "all"})).json() == {"ok": True}
    assert (await client.get("/api/sessions")).json() == []
    assert "error" in (await client.post("/api/clear", json={"target": "everything"})).json()


@pytest.mark.asyncio
async def test_cleanup_endpoint_removes_dead_tty(client, service):
    await _start(client, "gone", tty="/nonexistent/tty")
    await _start(client, "keep")
    resp = await client.post("/api/cleanup")
    assert resp.json() == {"skipped": False, "removed": [{"session_id": "gone", "reason": "tty_closed"}]}
    assert [s["session_id"] for s in (await client.get("/api/sessions")).json()] == ["keep"]
    assert service.deletion_log.exists()


@pytest.mark.asyncio
async def test_daemon_status_when_absent(client, monkeypatch, tmp_path):
    monkeypatch.setattr(ws, "SOCKET_PATH", tmp_path / "none.sock")
    resp = await client.get("/api/daemon")
    assert resp.json()["reachable"] is False


# ── Config ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_session_timeout_endpoint(client, service):
    assert (await client.get("/api/config")).json() == {"sessionTimeoutMinutes": 0}

    resp = await client.put("/api/config/session-timeout", json={"minutes": 20})
    assert resp.json() == {"ok": True, "sessionTimeoutMinutes": 20}
    assert (await client.get("/api/config")).json()["sessionTimeoutMinutes"] == 20
    assert json.loads(service.config_file.read_text())["sessionTimeoutMinutes"] == 20


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes", [-1, "10", 1.5, True, None])
async def test_session_timeout_endpoint_rejects(client, service, minutes):
    resp = await client.put("/api/config/session-timeout", json={"minutes": minutes})
    assert "error" in resp.json()
    assert not service.config_file.exists()


def test_main_stores_session_timeout(monkeypatch, service):
    """--session-timeout writes config.json before the server starts."""
    started = []
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: started.append(kwargs))
    monkeypatch.setattr(ws, "settings", dict(ws.settings))
    monkeypatch.setattr(sys, "argv", ["paddock-monitor", "--no-daemon", "--session-timeout", "15"])
    ws.main()
    assert json.loads(service.config_file.read_text())["sessionTimeoutMinutes"] == 15
    assert ws.settings["daemon"] is False
    assert started == [{"host": "127.0.0.1", "port": 8421}]
