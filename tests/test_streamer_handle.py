"""Tests for streamer handle files and process helpers."""

import json
import os
import subprocess

from greenlight.streamer.handle import (
    StreamerHandle,
    handle_path,
    is_process_alive,
    list_handles,
    load_handle,
    read_pid,
    remove_handle,
    save_handle,
    tail_pid_path,
    terminate_process,
)


class TestReadPid:
    def test_returns_none_when_no_file(self, tmp_path):
        assert read_pid(tmp_path / "x.pid") is None

    def test_reads_valid_pid(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("12345\n")
        assert read_pid(pid_file) == 12345

    def test_returns_none_for_invalid_content(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("not_a_number")
        assert read_pid(pid_file) is None

    def test_returns_none_for_zero_pid(self, tmp_path):
        pid_file = tmp_path / "x.pid"
        pid_file.write_text("0")
        assert read_pid(pid_file) is None


class TestHandleFiles:
    def test_save_and_load(self, tmp_path):
        save_handle(tmp_path, StreamerHandle(session_id="s1", relay_id="r1", pid=42, source_path="/t"))
        handle = load_handle(tmp_path, "s1")
        assert handle.relay_id == "r1"
        assert handle.pid == 42
        assert handle.source_path == "/t"
        assert handle.tail_pid is None

    def test_tail_pid_comes_from_worker_file(self, tmp_path):
        save_handle(tmp_path, StreamerHandle(session_id="s1", relay_id="r1", pid=42, tail_pid=7))
        assert "tail_pid" not in json.loads(handle_path(tmp_path, "s1").read_text())

        tail_pid_path(tmp_path, "s1").write_text("4321")
        assert load_handle(tmp_path, "s1").tail_pid == 4321

    def test_load_missing(self, tmp_path):
        assert load_handle(tmp_path, "nope") is None

    def test_load_corrupt(self, tmp_path):
        handle_path(tmp_path, "s1").write_text("{broken")
        assert load_handle(tmp_path, "s1") is None

    def test_unsafe_session_id_stays_in_directory(self, tmp_path):
        save_handle(tmp_path, StreamerHandle(session_id="../evil", relay_id="", pid=1))
        assert handle_path(tmp_path, "../evil").parent == tmp_path
        assert load_handle(tmp_path, "../evil").session_id == "../evil"

    def test_remove_checks_owner(self, tmp_path):
        save_handle(tmp_path, StreamerHandle(session_id="s1", relay_id="r1", pid=42))
        remove_handle(tmp_path, "s1", pid=99)
        assert load_handle(tmp_path, "s1") is not None
        remove_handle(tmp_path, "s1", pid=42)
        assert load_handle(tmp_path, "s1") is None

    def test_remove_unconditionally(self, tmp_path):
        save_handle(tmp_path, StreamerHandle(session_id="s1", relay_id="r1", pid=42))
        remove_handle(tmp_path, "s1")
        assert not handle_path(tmp_path, "s1").exists()

    def test_list_newest_first(self, tmp_path):
        save_handle(tmp_path, StreamerHandle(session_id="a", relay_id="", pid=1, started_at=1.0))
        save_handle(tmp_path, StreamerHandle(session_id="b", relay_id="", pid=2, started_at=2.0))
        assert [h.session_id for h in list_handles(tmp_path)] == ["b", "a"]

    def test_list_missing_directory(self, tmp_path):
        assert list_handles(tmp_path / "none") == []


class TestProcesses:
    def test_current_process_is_alive(self):
        assert is_process_alive(os.getpid()) is True

    def test_nonexistent_process(self):
        # PID 99999999 almost certainly doesn't exist
        assert is_process_alive(99999999) is False

    def test_exited_child_is_not_alive(self):
        proc = subprocess.Popen(["true"])
        proc.wait()
        assert is_process_alive(proc.pid) is False

    def test_terminate(self):
        proc = subprocess.Popen(["sleep", "60"])
        assert terminate_process(proc.pid) is True
        assert is_process_alive(proc.pid) is False

    def test_terminate_already_gone(self):
        assert terminate_process(99999999) is True
