"""Claude Code hook adapter.

Handles three hook events:
    PermissionRequest  - forwarded to the relay, blocks for a decision
    UserPromptSubmit   - starts the transcript streamer early
    Notification       - idle prompts etc., forwarded without waiting
"""

from typing import Any

from greenlight.adapters.base import HookEvent, HookKind
from greenlight.config import GreenlightConfig
from greenlight.decision import DecisionRequest
from greenlight.renderer import ClaudeCodeRenderer


class ClaudeCodeAdapter:
    """Adapter for Claude Code's hook payloads."""

    agent = "claude-code"

    def __init__(self):
        self.renderer = ClaudeCodeRenderer()

    def parse(self, input_data: dict[str, Any], config: GreenlightConfig) -> HookEvent:
        device_id = config.require_device_id()
        event_name = input_data.get("hook_event_name") or "PermissionRequest"
        session_id = str(input_data.get("session_id") or "")
        transcript_path = str(input_data.get("transcript_path") or "")
        relay_id = config.relay_id or ""

        event = HookEvent(
            kind=HookKind.IGNORED,
            session_id=session_id,
            transcript_path=transcript_path,
            raw=input_data,
        )

        if event_name == "UserPromptSubmit":
            event.kind = HookKind.PROMPT_SUBMIT

        elif event_name == "Notification":
            notification_type = str(input_data.get("notification_type") or "")
            event.kind = HookKind.NOTIFICATION
            event.request = DecisionRequest(
                device_id=device_id,
                relay_id=relay_id,
                tool_name=notification_type,
                tool_input={
                    "notification_type": notification_type,
                    "message": str(input_data.get("message") or ""),
                    "title": str(input_data.get("title") or ""),
                },
                agent=self.agent,
                project=config.project,
            )

        elif event_name == "PermissionRequest":
            event.kind = HookKind.PERMISSION
            event.request = DecisionRequest(
                device_id=device_id,
                relay_id=relay_id,
                tool_name=str(input_data.get("tool_name") or ""),
                tool_input=input_data.get("tool_input", {}),
                agent=self.agent,
                project=config.project,
                # The relay receives the full hook payload
                extra=dict(input_data),
            )

        return event
