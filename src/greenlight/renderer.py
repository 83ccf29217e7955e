"""Map decision outcomes onto each host's hook response contract.

Claude Code reads a PermissionRequest JSON object from stdout. Windsurf
(Cascade) only looks at the exit code: 0 allows, 2 blocks and shows stderr
to the user.
"""

import json
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass

from greenlight.decision import DecisionResponse, Outcome, TransportFailure

EXIT_ALLOW = 0
EXIT_DENY = 2


@dataclass
class HostResponse:
    """What the hook process writes and how it exits."""
    exit_code: int = EXIT_ALLOW
    stdout: str = ""
    stderr: str = ""

    def emit(self) -> int:
        """Write stdout/stderr and return the exit code."""
        if self.stdout:
            print(self.stdout)
        if self.stderr:
            print(self.stderr, file=sys.stderr)
        return self.exit_code


class DecisionRenderer(ABC):
    """Renders every outcome into exactly one HostResponse."""

    default_deny_message = "Permission denied"

    def render(self, outcome: Outcome) -> HostResponse:
        if isinstance(outcome, TransportFailure):
            return self.render_failure(outcome)
        if outcome.allowed:
            return self.render_allow(outcome)
        return self.render_deny(outcome)

    @abstractmethod
    def render_allow(self, response: DecisionResponse) -> HostResponse:
        ...

    @abstractmethod
    def render_deny(self, response: DecisionResponse) -> HostResponse:
        ...

    @abstractmethod
    def render_failure(self, failure: TransportFailure) -> HostResponse:
        ...


class ClaudeCodeRenderer(DecisionRenderer):
    """hookSpecificOutput for Claude Code's PermissionRequest hook."""

    hook_event_name = "PermissionRequest"

    def _decision(self, decision: dict, exit_code: int = EXIT_ALLOW, stderr: str = "") -> HostResponse:
        body = {
            "hookSpecificOutput": {
                "hookEventName": self.hook_event_name,
                "decision": decision,
            }
        }
        return HostResponse(exit_code=exit_code, stdout=json.dumps(body, indent=2), stderr=stderr)

    def render_allow(self, response: DecisionResponse) -> HostResponse:
        decision: dict = {"behavior": "allow"}
        # AskUserQuestion answers come back as updated_input
        if response.updated_input not in (None, ""):
            decision["updatedInput"] = response.updated_input
        return self._decision(decision)

    def render_deny(self, response: DecisionResponse) -> HostResponse:
        decision: dict = {
            "behavior": "deny",
            "message": response.message or self.default_deny_message,
        }
        if response.interrupt:
            decision["interrupt"] = True
        return self._decision(decision)

    def render_failure(self, failure: TransportFailure) -> HostResponse:
        return self._decision(
            {"behavior": "deny", "message": failure.message, "interrupt": True},
            exit_code=EXIT_DENY,
            stderr=failure.message,
        )


class WindsurfRenderer(DecisionRenderer):
    """Exit-code contract for Windsurf pre-action hooks."""

    default_deny_message = "Permission denied via Greenlight"

    def render_allow(self, response: DecisionResponse) -> HostResponse:
        return HostResponse(exit_code=EXIT_ALLOW)

    def render_deny(self, response: DecisionResponse) -> HostResponse:
        if response.error:
            message = f"Greenlight error: {response.error}"
        else:
            message = response.message or self.default_deny_message
        return HostResponse(exit_code=EXIT_DENY, stderr=message)

    def render_failure(self, failure: TransportFailure) -> HostResponse:
        return HostResponse(exit_code=EXIT_DENY, stderr=failure.message)
