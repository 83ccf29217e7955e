"""Tests for hook orchestration (run_hook)."""

import json
from unittest.mock import patch

import httpx
import pytest

from greenlight.adapters import ClaudeCodeAdapter, WindsurfAdapter
from greenlight.config import ConfigurationError
from greenlight.hook import parse_hook_input, run_hook
from tests.relay_stub import Reply

PERMISSION = {
    "hook_event_name": "PermissionRequest",
    "session_id": "s1",
    "transcript_path": "",
    "tool_name": "Bash",
    "tool_input": {"command": "ls"},
}


def decision_of(response):
    return json.loads(response.stdout)["hookSpecificOutput"]["decision"]


class TestParseHookInput:
    def test_object(self):
        assert parse_hook_input('{"a": 1}') == {"a": 1}

    def test_empty(self):
        assert parse_hook_input("  \n") == {}

    @pytest.mark.parametrize("text", ["{oops", "[1, 2]", '"str"'])
    def test_invalid(self, text):
        with pytest.raises(ConfigurationError, match="Invalid hook input"):
            parse_hook_input(text)


class TestRunHook:
    def test_permission_allowed(self, config, relay):
        relay.reply("/request", Reply(body={"behavior": "allow"}))
        with relay.client() as client:
            response = run_hook(ClaudeCodeAdapter(), config, PERMISSION, client=client)
        assert response.exit_code == 0
        assert decision_of(response) == {"behavior": "allow"}

    def test_missing_device_id_denies_without_network(self, config, relay):
        config.device_id = None
        with relay.client() as client:
            response = run_hook(ClaudeCodeAdapter(), config, PERMISSION, client=client)
        assert decision_of(response)["behavior"] == "deny"
        assert relay.requests == []

    def test_windsurf_missing_project_blocks(self, config, relay, tmp_path):
        payload = {
            "agent_action_name": "pre_read_code",
            "tool_info": {"file_path": str(tmp_path / "x.txt")},
        }
        with relay.client() as client:
            response = run_hook(WindsurfAdapter(), config, payload, client=client)
        assert response.exit_code == 2
        assert "--project" in response.stderr

    def test_enrolls_before_deciding(self, config, relay):
        config.relay_id = "r1"
        relay.reply("/session/enroll", Reply(body={"approved": True}))
        relay.reply("/request", Reply(body={"behavior": "allow"}))
        with relay.client() as client:
            run_hook(ClaudeCodeAdapter(), config, PERMISSION, client=client)
        assert [path for path, _ in relay.requests] == ["/session/enroll", "/request"]
        assert relay.calls("/request")[0]["relay_id"] == "r1"

    def test_enrollment_failure_still_asks(self, config, relay):
        config.relay_id = "r1"
        relay.reply("/session/enroll", Reply(error=httpx.ConnectError))
        relay.reply("/request", Reply(body={"behavior": "deny", "message": "no"}))
        with relay.client() as client:
            response = run_hook(ClaudeCodeAdapter(), config, PERMISSION, client=client)
        assert decision_of(response)["message"] == "no"

    def test_unreachable(self, config, relay):
        relay.reply("/request", Reply(error=httpx.ReadTimeout))
        with relay.client() as client:
            response = run_hook(ClaudeCodeAdapter(), config, PERMISSION, client=client)
        assert response.exit_code == 2
        assert decision_of(response)["interrupt"] is True

    def test_ignored_event(self, config, relay):
        with relay.client() as client:
            response = run_hook(ClaudeCodeAdapter(), config, {"hook_event_name": "Stop"}, client=client)
        assert response.exit_code == 0
        assert response.stdout == ""
        assert relay.requests == []

    def test_notification_is_handed_off(self, config, relay):
        payload = {"hook_event_name": "Notification", "notification_type": "idle_prompt"}
        with patch("greenlight.hook.subprocess.Popen") as popen, relay.client() as client:
            response = run_hook(ClaudeCodeAdapter(), config, payload, client=client)

        assert response.exit_code == 0
        assert response.stdout == ""
        assert relay.calls("/request") == []

        cmd = popen.call_args.args[0]
        assert cmd[1:4] == ["-m", "greenlight", "notify"]
        assert cmd[cmd.index("--server") + 1] == config.server
        assert popen.call_args.kwargs["start_new_session"] is True
        sent = json.loads(popen.return_value.stdin.write.call_args.args[0])
        assert sent["tool_name"] == "idle_prompt"
        assert sent["device_id"] == "d1"
        popen.return_value.stdin.close.assert_called_once()

    def test_notification_spawn_failure_is_ignored(self, config, relay):
        payload = {"hook_event_name": "Notification", "notification_type": "idle_prompt"}
        with patch("greenlight.hook.subprocess.Popen", side_effect=OSError("no fork")), \
                relay.client() as client:
            response = run_hook(ClaudeCodeAdapter(), config, payload, client=client)
        assert response.exit_code == 0

    def test_writes_event_log(self, config, relay):
        relay.reply("/request", Reply(body={"behavior": "deny"}))
        with relay.client() as client:
            run_hook(ClaudeCodeAdapter(), config, PERMISSION, client=client)
        entry = json.loads((config.log_dir / "hook_events.jsonl").read_text().splitlines()[-1])
        assert entry["event"] == "claude-code"
        assert entry["behavior"] == "deny"


class TestActivity:
    def test_permission_starts_streamer(self, config, relay, tmp_path):
        config.relay_id = "r1"
        relay.reply("/session/enroll", Reply(body={"approved": True}))
        relay.reply("/request", Reply(body={"behavior": "allow"}))
        payload = dict(PERMISSION, transcript_path=str(tmp_path / "t.jsonl"))

        with patch("greenlight.hook.ensure_running") as ensure, relay.client() as client:
            run_hook(ClaudeCodeAdapter(), config, payload, activity=True, client=client)

        ensure.assert_called_once()
        kwargs = ensure.call_args.kwargs
        assert kwargs["session_id"] == "s1"
        assert kwargs["relay_id"] == "r1"
        assert kwargs["source_path"] == str(tmp_path / "t.jsonl")
        assert kwargs["device_id"] == "d1"

    def test_prompt_submit_only_starts_streamer(self, config, relay):
        with patch("greenlight.hook.ensure_running") as ensure, relay.client() as client:
            response = run_hook(
                ClaudeCodeAdapter(),
                config,
                {"hook_event_name": "UserPromptSubmit", "session_id": "s1"},
                activity=True,
                client=client,
            )
        ensure.assert_called_once()
        assert response.exit_code == 0
        assert response.stdout == ""
        assert relay.calls("/request") == []

    def test_no_streamer_without_activity(self, config, relay):
        relay.reply("/request", Reply(body={"behavior": "allow"}))
        with patch("greenlight.hook.ensure_running") as ensure, relay.client() as client:
            run_hook(ClaudeCodeAdapter(), config, PERMISSION, client=client)
        ensure.assert_not_called()

    def test_streamer_failure_does_not_affect_decision(self, config, relay):
        relay.reply("/request", Reply(body={"behavior": "allow"}))
        with patch("greenlight.hook.ensure_running", side_effect=OSError("no fork")), \
                relay.client() as client:
            response = run_hook(ClaudeCodeAdapter(), config, PERMISSION, activity=True, client=client)
        assert decision_of(response) == {"behavior": "allow"}


def test_unusable_state_dir_denies(config, relay, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    config.state_dir = blocker
    config.relay_id = "r1"
    with relay.client() as client:
        response = run_hook(ClaudeCodeAdapter(), config, PERMISSION, client=client)
    decision = decision_of(response)
    assert decision["behavior"] == "deny"
    assert "Greenlight hook failed" in decision["message"]
