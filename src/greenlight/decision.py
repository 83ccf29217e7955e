"""Permission decision requests.

One decision request per hook invocation. The only retry is the
re-enrollment path: a 401 invalidates the cached enrollment, enrolls again
and, if that succeeds, repeats the identical request once.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from greenlight.client import (
    GreenlightAuthError,
    GreenlightClient,
    GreenlightClientError,
    GreenlightConnectionError,
)
from greenlight.registry import SessionRegistry

logger = logging.getLogger(__name__)


class Behavior(str, Enum):
    """The reviewer's verdict."""

    ALLOW = "allow"
    DENY = "deny"


@dataclass
class DecisionRequest:
    """A single permission request, built fresh per hook invocation.

    Attributes:
        device_id: Device paired with the reviewer's app
        relay_id: Conversation correlation ID (may be empty)
        tool_name: Tool the agent wants to run
        tool_input: Tool arguments, forwarded as-is
        agent: Host tag ("claude-code", "windsurf")
        project: Optional project name
        extra: Raw host payload fields merged under the identity fields
    """

    device_id: str
    relay_id: str
    tool_name: str
    tool_input: Any
    agent: str
    project: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload.update({
            "device_id": self.device_id,
            "tool_name": self.tool_name,
            "tool_input": self.tool_input,
            "relay_id": self.relay_id,
            "agent": self.agent,
        })
        if self.project:
            payload["project"] = self.project
        return payload


@dataclass
class DecisionResponse:
    """The server's answer, normalized."""

    behavior: Behavior
    message: str | None = None
    updated_input: Any = None
    interrupt: bool = False
    error: str | None = None

    @property
    def allowed(self) -> bool:
        return self.behavior is Behavior.ALLOW

    @classmethod
    def deny(cls, message: str, interrupt: bool = False) -> "DecisionResponse":
        return cls(behavior=Behavior.DENY, message=message, interrupt=interrupt)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "DecisionResponse":
        """Parse a /request response body. Anything but an explicit allow denies."""
        error = data.get("error")
        if error:
            return cls(behavior=Behavior.DENY, message=str(error), error=str(error))

        behavior = Behavior.ALLOW if data.get("behavior") == "allow" else Behavior.DENY
        message = data.get("message") or None
        updated_input = data.get("updated_input")

        if behavior is Behavior.ALLOW:
            return cls(behavior=behavior, message=message, updated_input=updated_input)
        return cls(
            behavior=behavior,
            message=message,
            interrupt=data.get("interrupt") is True,
        )


@dataclass
class TransportFailure:
    """The server could not be reached. Always rendered as deny + interrupt."""

    reason: str
    interrupt: bool = True

    @property
    def message(self) -> str:
        return "Failed to reach Greenlight server (timeout or connection error)"


Outcome = DecisionResponse | TransportFailure


class RetryState(Enum):
    """Where a decision request is in the unauthorized-retry cycle."""

    NORMAL = "normal"
    REENROLLING = "reenrolling"
    RETRIED = "retried"


class DecisionClient:
    """Issues decision requests and owns the retry-on-unauthorized logic."""

    def __init__(
        self,
        client: GreenlightClient,
        registry: SessionRegistry,
        timeout: float | None = None,
    ):
        self.client = client
        self.registry = registry
        self.timeout = timeout

    def decide(self, request: DecisionRequest) -> Outcome:
        """Ask the server for a decision.

        Returns:
            DecisionResponse for any server answer (errors become deny), or
            TransportFailure when the server could not be reached.
        """
        payload = request.to_payload()
        state = RetryState.NORMAL

        while True:
            try:
                data = self.client.request_decision(payload, timeout=self.timeout)
            except GreenlightAuthError as e:
                if state is RetryState.NORMAL and request.relay_id:
                    state = self._reenroll(request)
                    if state is RetryState.RETRIED:
                        continue
                return DecisionResponse.deny(f"Greenlight server error (HTTP 401): {e}")
            except GreenlightConnectionError as e:
                logger.warning(f"Decision request failed: {e}")
                return TransportFailure(reason=str(e))
            except GreenlightClientError as e:
                logger.warning(f"Decision request rejected: {e}")
                return DecisionResponse.deny(str(e))

            response = DecisionResponse.from_payload(data)
            logger.info(f"Decision for {request.tool_name}: {response.behavior.value}")
            return response

    def _reenroll(self, request: DecisionRequest) -> RetryState:
        """Leave NORMAL after a 401.

        Returns RETRIED when enrollment succeeded and the request should be
        sent once more, REENROLLING when it failed. Neither state retries
        again, so a second 401 surfaces as a deny.
        """
        state = RetryState.REENROLLING
        logger.info(f"Relay {request.relay_id[:8]} not enrolled, re-enrolling")
        self.registry.invalidate(request.relay_id)
        if self.registry.ensure_enrolled(request.relay_id, request.device_id, request.project):
            return RetryState.RETRIED
        return state
