"""Tests for the hook CLI entry point."""

import io
import json
import shutil
import tempfile
from pathlib import Path

import pytest

import paddock.hook_handler as hh
from paddock.daemon import CoordinatorDaemon
from paddock.daemon_client import VIA_DAEMON, VIA_DIRECT
from paddock.session_state import InvalidEventError
from paddock.store import StoreService


@pytest.fixture
def service(tmp_path):
    return StoreService(
        store_file=tmp_path / "sessions.json",
        deletion_log=tmp_path / "deletion.log",
        config_file=tmp_path / "config.json",
    )


@pytest.fixture
def sock_path():
    d = tempfile.mkdtemp(prefix="pdk")
    yield Path(d) / "d.sock"
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture(autouse=True)
def fixed_tty(monkeypatch):
    async def fake_detect_tty():
        return "/dev/ttys042"

    monkeypatch.setattr(hh, "detect_tty", fake_detect_tty)


# ── build_event ─────────────────────────────────────────────────────────────


def test_build_event_fills_name_and_tty():
    event = hh.build_event("UserPromptSubmit", json.dumps({"session_id": "s1", "prompt": "hi"}), "/dev/pts/3")
    assert event["hook_event_name"] == "UserPromptSubmit"
    assert event["tty"] == "/dev/pts/3"
    assert event["prompt"] == "hi"


def test_build_event_keeps_payload_tty():
    raw = json.dumps({"session_id": "s1", "tty": "/dev/pts/9"})
    assert hh.build_event("Stop", raw, "/dev/pts/3")["tty"] == "/dev/pts/9"


@pytest.mark.parametrize("raw", ["", "not json", "[1, 2]"])
def test_build_event_rejects_bad_input(raw):
    with pytest.raises(InvalidEventError) as exc:
        hh.build_event("Stop", raw, None)
    assert exc.value.field == "payload"


# ── handle_hook_event ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_handle_hook_event_direct_write(service, sock_path):
    raw = json.dumps({"session_id": "s1", "cwd": "/work"})
    assert await hh.handle_hook_event("SessionStart", raw, service, sock_path) == VIA_DIRECT
    stored = json.loads(service.store_file.read_text())["sessions"]["s1"]
    assert stored["tty"] == "/dev/ttys042"
    assert stored["status"] == "running"


@pytest.mark.asyncio
async def test_handle_hook_event_via_daemon(service, sock_path, tmp_path):
    daemon = CoordinatorDaemon(service, sock_path)
    await daemon.start()
    try:
        local = StoreService(store_file=tmp_path / "local.json")
        raw = json.dumps({"session_id": "s1"})
        assert await hh.handle_hook_event("SessionStart", raw, local, sock_path) == VIA_DAEMON
        assert "s1" in service.read()["sessions"]
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_handle_hook_event_unknown_event(service, sock_path):
    with pytest.raises(InvalidEventError):
        await hh.handle_hook_event("Bogus", "{}", service, sock_path)


# ── main ────────────────────────────────────────────────────────────────────


def test_main_without_args_exits(monkeypatch, capsys):
    monkeypatch.setattr(hh.sys, "argv", ["paddock-hook"])
    with pytest.raises(SystemExit) as exc:
        hh.main()
    assert exc.value.code == 1
    assert "usage" in capsys.readouterr().err


def test_main_invalid_payload_exits(monkeypatch, capsys):
    monkeypatch.setattr(hh.sys, "argv", ["paddock-hook", "Stop"])
    monkeypatch.setattr(hh.sys, "stdin", io.StringIO("{}"))
    with pytest.raises(SystemExit) as exc:
        hh.main()
    assert exc.value.code == 1
    assert "Invalid session_id" in capsys.readouterr().err


def test_main_swallows_unexpected_errors(monkeypatch):
    """A broken store must never make the agent's hook fail."""
    async def explode(event_name, raw):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(hh.sys, "argv", ["paddock-hook", "Stop"])
    monkeypatch.setattr(hh.sys, "stdin", io.StringIO('{"session_id": "s1"}'))
    monkeypatch.setattr(hh, "handle_hook_event", explode)
    hh.main()


def test_main_rejected_request_exits(monkeypatch, capsys):
    async def rejected(event_name, raw):
        raise ValueError("unknown request type: bogus")

    monkeypatch.setattr(hh.sys, "argv", ["paddock-hook", "Stop"])
    monkeypatch.setattr(hh.sys, "stdin", io.StringIO('{"session_id": "s1"}'))
    monkeypatch.setattr(hh, "handle_hook_event", rejected)
    with pytest.raises(SystemExit) as exc:
        hh.main()
    assert exc.value.code == 1
    assert "unknown request type" in capsys.readouterr().err
