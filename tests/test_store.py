"""Tests for StoreService, the read/write surface used by the REST and daemon layers."""

import json

import pytest

from paddock.session_state import InvalidEventError
from paddock.store import StoreService


@pytest.fixture
def service(tmp_path):
    return StoreService(
        store_file=tmp_path / "sessions.json",
        deletion_log=tmp_path / "deletion.log",
        config_file=tmp_path / "config.json",
    )


def _start(service, session_id, **fields):
    event = {"session_id": session_id, "hook_event_name": "SessionStart", "cwd": "/work"}
    event.update(fields)
    return service.apply_event(event)


def test_invalid_event_leaves_store_untouched(service):
    with pytest.raises(InvalidEventError):
        service.apply_event({"session_id": "s1", "hook_event_name": "SessionStart", "cwd": 5})
    assert not service.cache.pending
    assert service.read()["sessions"] == {}


def test_mutations_persist_after_flush(service, tmp_path):
    _start(service, "s1")
    project = service.create_project("api")
    assert service.assign_to_project("s1", project["id"]) is True
    assert service.flush() is True

    fresh = StoreService(store_file=tmp_path / "sessions.json")
    assert fresh.project_of("s1") == project["id"]
    assert [p["name"] for p in fresh.list_projects()] == ["api"]


def test_assign_unknown_session_fails(service):
    project = service.create_project("api")
    assert service.assign_to_project("ghost", project["id"]) is False


def test_list_sessions_repairs_order_on_disk(service):
    service.store_file.write_text(json.dumps({
        "sessions": {"a": {"session_id": "a"}, "b": {"session_id": "b"}},
        "displayOrder": [{"type": "session", "key": "a"}, {"type": "session", "key": "zombie"}],
    }))
    assert [s["session_id"] for s in service.list_sessions()] == ["a", "b"]
    assert service.get_display_order() == [
        {"type": "project", "id": ""},
        {"type": "session", "key": "a"},
        {"type": "session", "key": "b"},
    ]


def test_list_sessions_clean_store_does_not_write(service):
    _start(service, "s1")
    service.flush()
    service.list_sessions()
    assert not service.cache.pending


def test_display_field_updates(service):
    _start(service, "s1")
    assert service.update_last_message("s1", "all done") is True
    assert service.update_last_message("s1", "all done") is False
    assert service.update_summary("s1", "Writing tests", 1024) is True
    assert service.set_tmux_target("s1", "main:0.1", "%1") is True
    assert service.set_tmux_target("ghost", "main:0.1") is False
    session = service.get_session("s1")
    assert session["lastMessage"] == "all done"
    assert session["summary_transcript_size"] == 1024
    assert session["tmux_pane_id"] == "%1"


def test_move_and_reorder(service):
    _start(service, "a")
    _start(service, "b")
    assert service.move_session("a", "up") is True
    assert [s["session_id"] for s in service.list_sessions()] == ["a", "b"]
    p1 = service.create_project("one")["id"]
    p2 = service.create_project("two")["id"]
    assert service.reorder_project(p2, "up") is True
    assert [p["id"] for p in service.list_projects()] == [p2, p1]


def test_clear_all(service):
    _start(service, "a")
    service.create_project("p")
    service.clear_all()
    assert service.read()["sessions"] == {}
    assert service.list_projects() == []
    assert service.get_display_order() == [{"type": "project", "id": ""}]


def test_delete_project(service):
    _start(service, "a")
    pid = service.create_project("p")["id"]
    service.assign_to_project("a", pid)
    assert service.delete_project(pid) is True
    assert service.delete_project(pid) is False
    assert service.project_of("a") is None
