"""Windsurf (Cascade) hook adapter.

Windsurf hook input:
    {"agent_action_name": "pre_run_command", "trajectory_id": "...",
     "execution_id": "...", "timestamp": "...", "tool_info": {...}}

Pre-action hooks map onto Greenlight tool names:
    pre_run_command   -> Bash  {"command": ...}
    pre_write_code    -> Edit  (tool_info as-is)
    pre_read_code     -> Read  (tool_info as-is)
    pre_mcp_tool_use  -> mcp__<server>__<tool> (tool arguments)

Unknown actions are not ours and are allowed.
"""

from typing import Any

from greenlight.adapters.base import HookEvent, HookKind
from greenlight.config import ConfigurationError, GreenlightConfig
from greenlight.decision import DecisionRequest
from greenlight.project import cwd_name, git_toplevel_name
from greenlight.renderer import WindsurfRenderer

MISSING_PROJECT_MESSAGE = (
    "Greenlight hook is missing the --project flag. Add --project PROJECT_NAME "
    "to the hook command in your hooks.json config. "
    "See https://getgreenlight.github.io/guide-windsurf.html"
)


class WindsurfAdapter:
    """Adapter for Windsurf's pre-action hooks."""

    agent = "windsurf"

    def __init__(self):
        self.renderer = WindsurfRenderer()

    def parse(self, input_data: dict[str, Any], config: GreenlightConfig) -> HookEvent:
        device_id = config.require_device_id()
        action = input_data.get("agent_action_name") or ""
        tool_info = input_data.get("tool_info") or {}
        if not isinstance(tool_info, dict):
            tool_info = {}

        project = config.project
        if action == "pre_run_command":
            tool_name = "Bash"
            tool_input: Any = {"command": str(tool_info.get("command_line") or "")}
            project = project or cwd_name(str(tool_info.get("cwd") or ""))
        elif action == "pre_write_code":
            tool_name = "Edit"
            tool_input = tool_info
            project = project or git_toplevel_name(str(tool_info.get("file_path") or ""))
        elif action == "pre_read_code":
            tool_name = "Read"
            tool_input = tool_info
            project = project or git_toplevel_name(str(tool_info.get("file_path") or ""))
        elif action == "pre_mcp_tool_use":
            server = tool_info.get("mcp_server_name") or ""
            tool = tool_info.get("mcp_tool_name") or ""
            tool_name = f"mcp__{server}__{tool}"
            tool_input = tool_info.get("mcp_tool_arguments") or {}
        else:
            return HookEvent(kind=HookKind.IGNORED, raw=input_data)

        if not project:
            raise ConfigurationError(MISSING_PROJECT_MESSAGE)

        return HookEvent(
            kind=HookKind.PERMISSION,
            session_id=str(input_data.get("trajectory_id") or ""),
            request=DecisionRequest(
                device_id=device_id,
                relay_id=config.relay_id or "",
                tool_name=tool_name,
                tool_input=tool_input,
                agent=self.agent,
                project=project,
            ),
            raw=input_data,
        )
