"""Tests for the JSONL hook event log."""

import json

from greenlight import hook_log
from greenlight.hook_log import log_hook_event


def read_entries(log_dir):
    return [json.loads(line) for line in (log_dir / "hook_events.jsonl").read_text().splitlines()]


def test_appends_entries(tmp_path):
    log_hook_event(tmp_path, "PermissionRequest", "session-1234567890abcdef", {"tool": "Bash"})
    log_hook_event(tmp_path, "Notification")

    first, second = read_entries(tmp_path)
    assert first["event"] == "PermissionRequest"
    assert first["session_id"] == "session-1234"
    assert first["tool"] == "Bash"
    assert second["session_id"] == ""


def test_truncates_large_values(tmp_path):
    log_hook_event(tmp_path, "PermissionRequest", extra={"input": "x" * 2000})
    entry = read_entries(tmp_path)[0]
    assert len(entry["input"]) == 503
    assert entry["input"].endswith("...")


def test_rotates_when_large(tmp_path, monkeypatch):
    monkeypatch.setattr(hook_log, "MAX_LOG_BYTES", 100)
    (tmp_path / "hook_events.jsonl").write_text("y" * 200)

    log_hook_event(tmp_path, "PermissionRequest")

    assert (tmp_path / "hook_events.jsonl.1").read_text() == "y" * 200
    assert len(read_entries(tmp_path)) == 1


def test_unwritable_directory_is_ignored(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    log_hook_event(blocker / "logs", "PermissionRequest")
