"""Base adapter protocol for host agents.

Each host (Claude Code, Windsurf) delivers its own hook payload on stdin and
expects its own response format. An adapter translates the payload into a
HookEvent carrying a canonical DecisionRequest, and names the renderer that
turns the decision back into the host's format.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from greenlight.config import GreenlightConfig
from greenlight.decision import DecisionRequest
from greenlight.renderer import DecisionRenderer


class HookKind(str, Enum):
    """What the hook invocation asks Greenlight to do."""

    PERMISSION = "permission"      # Block until the reviewer decides
    PROMPT_SUBMIT = "prompt_submit"  # Only (re)start transcript streaming
    NOTIFICATION = "notification"  # Forward and return immediately
    IGNORED = "ignored"            # Not ours, let the host proceed


@dataclass
class HookEvent:
    """A host hook payload, tool-agnostic."""
    kind: HookKind
    session_id: str = ""
    transcript_path: str = ""
    request: DecisionRequest | None = None
    # Raw hook input, kept for the event log
    raw: dict[str, Any] = field(default_factory=dict)


class HostAdapter(Protocol):
    """Interface each host adapter implements."""

    agent: str  # "claude-code" | "windsurf"
    renderer: DecisionRenderer

    def parse(self, input_data: dict[str, Any], config: GreenlightConfig) -> HookEvent:
        """Translate a hook payload into a HookEvent.

        Args:
            input_data: JSON object read from the hook's stdin.
            config: Effective configuration (device, project, relay).

        Returns:
            HookEvent; for PERMISSION and NOTIFICATION kinds ``request`` is set.

        Raises:
            ConfigurationError: If required identity is missing.
        """
        ...
