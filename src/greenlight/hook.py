"""Hook orchestration.

One call to run_hook() per hook process:

    parse payload -> ensure enrolled -> ensure streamer (with --activity)
    -> decision request (re-enroll + retry once on 401) -> render

Every failure on the decision path resolves to a deny. Streaming problems
are logged and never reach the decision.
"""

import json
import logging
import subprocess
import sys
from typing import Any

from greenlight.adapters import HookEvent, HookKind, HostAdapter
from greenlight.client import GreenlightClient
from greenlight.config import ConfigurationError, GreenlightConfig
from greenlight.decision import DecisionClient, DecisionResponse, TransportFailure
from greenlight.hook_log import log_hook_event
from greenlight.registry import SessionRegistry
from greenlight.renderer import HostResponse
from greenlight.streamer import ensure_running

logger = logging.getLogger(__name__)


def parse_hook_input(text: str) -> dict[str, Any]:
    """Decode the JSON object a host writes to the hook's stdin.

    Raises:
        ConfigurationError: If stdin is not a JSON object.
    """
    try:
        data = json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid hook input: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError("Invalid hook input: expected a JSON object")
    return data


def start_streamer(event: HookEvent, config: GreenlightConfig) -> None:
    """Make sure the session's transcript streamer runs. Never raises."""
    try:
        ensure_running(
            session_id=event.session_id,
            relay_id=config.relay_id or "",
            source_path=event.transcript_path,
            device_id=config.device_id or "",
            project=config.project,
            server=config.server,
            config=config,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Could not start transcript streamer: {e}")


def forward_notification(payload: dict[str, Any], config: GreenlightConfig) -> None:
    """Hand a notification to a detached sender so the host is never held up.

    The sender (`greenlight notify`) reads the payload from stdin and outlives
    this process. Never raises.
    """
    cmd = [
        sys.executable, "-m", "greenlight", "notify",
        "--server", config.server,
        "--timeout", str(config.notify_timeout),
    ]
    try:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        with open(config.log_dir / "hook.log", "a") as logf:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=logf,
                start_new_session=True,
            )
        proc.stdin.write(json.dumps(payload).encode("utf-8"))
        proc.stdin.close()
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Could not forward notification: {e}")


def run_hook(
    adapter: HostAdapter,
    config: GreenlightConfig,
    input_data: dict[str, Any],
    activity: bool = False,
    client: GreenlightClient | None = None,
) -> HostResponse:
    """Handle one hook invocation and return what the host should see.

    Args:
        adapter: Host adapter (payload mapping + renderer).
        config: Effective configuration.
        input_data: Decoded hook payload.
        activity: Stream the transcript alongside permission requests.
        client: Relay client; one is created (and closed) when omitted.

    Returns:
        HostResponse to emit. Never raises for decision-path failures.
    """
    try:
        event = adapter.parse(input_data, config)
    except ConfigurationError as e:
        logger.warning(f"Configuration error: {e}")
        log_hook_event(config.log_dir, adapter.agent, extra={"error": str(e)})
        return adapter.renderer.render(DecisionResponse.deny(str(e)))

    if event.kind is HookKind.IGNORED:
        return HostResponse()

    owns_client = client is None
    if client is None:
        client = GreenlightClient(config.server, timeout=config.decision_timeout)
    try:
        return _dispatch(adapter, config, event, activity, client)
    except OSError as e:
        # Local state (markers, locks) unusable: still answer the host
        logger.error(f"Hook failed: {e}")
        return adapter.renderer.render(DecisionResponse.deny(f"Greenlight hook failed: {e}"))
    finally:
        if owns_client:
            client.close()


def _dispatch(
    adapter: HostAdapter,
    config: GreenlightConfig,
    event: HookEvent,
    activity: bool,
    client: GreenlightClient,
) -> HostResponse:
    registry = SessionRegistry(config.enrolled_dir, client, timeout=config.enroll_timeout)
    relay_id = config.relay_id or ""
    if relay_id and config.device_id:
        registry.ensure_enrolled(relay_id, config.device_id, config.project)

    if activity and event.kind in (HookKind.PERMISSION, HookKind.PROMPT_SUBMIT):
        start_streamer(event, config)

    if event.kind is HookKind.PROMPT_SUBMIT:
        return HostResponse()

    request = event.request
    if event.kind is HookKind.NOTIFICATION:
        forward_notification(request.to_payload(), config)
        log_hook_event(config.log_dir, "Notification", event.session_id, {"tool": request.tool_name})
        return HostResponse()

    outcome = DecisionClient(client, registry, timeout=config.decision_timeout).decide(request)
    if isinstance(outcome, TransportFailure):
        result = "unreachable"
    else:
        result = outcome.behavior.value
    log_hook_event(
        config.log_dir,
        adapter.agent,
        event.session_id,
        {"tool": request.tool_name, "behavior": result},
    )
    return adapter.renderer.render(outcome)
