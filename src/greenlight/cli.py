"""CLI interface for Greenlight.

Hook entry points (configured in the agent's hook settings):
    greenlight hook --device-id ID [--project NAME] [--activity]   # Claude Code
    greenlight windsurf --device-id ID --project NAME              # Windsurf

Operator commands:
    greenlight streams          # transcript streamers and their liveness
    greenlight stop SESSION_ID  # stop a session's streamer
    greenlight enrollments      # cached relay enrollments
    greenlight forget RELAY_ID  # drop a cached enrollment
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from greenlight.adapters import get_adapter
from greenlight.client import GreenlightClient
from greenlight.config import ConfigurationError, GreenlightConfig
from greenlight.decision import DecisionResponse
from greenlight.hook import parse_hook_input, run_hook
from greenlight.registry import SessionRegistry
from greenlight.streamer import stop_worker
from greenlight.streamer.handle import is_process_alive, list_handles, load_handle

console = Console()


def setup_logging(log_dir: Path, verbose: bool) -> None:
    """Log to a file; stdout and stderr belong to the host protocol."""
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        filename=str(log_dir / "hook.log"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_config(**overrides) -> GreenlightConfig:
    """Environment settings with command-line flags layered on top."""
    return GreenlightConfig(**{k: v for k, v in overrides.items() if v})


def _hook_config(agent: str, **overrides) -> GreenlightConfig:
    """build_config() for hook commands: invalid settings deny instead of crashing."""
    try:
        return build_config(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        deny = DecisionResponse.deny(f"Invalid Greenlight configuration: {problems}")
        sys.exit(get_adapter(agent).renderer.render(deny).emit())


def _run(agent: str, config: GreenlightConfig, activity: bool, verbose: bool) -> None:
    setup_logging(config.log_dir, verbose)
    adapter = get_adapter(agent)
    try:
        input_data = parse_hook_input(click.get_text_stream("stdin").read())
    except ConfigurationError as e:
        sys.exit(adapter.renderer.render(DecisionResponse.deny(str(e))).emit())
    response = run_hook(adapter, config, input_data, activity=activity)
    sys.exit(response.emit())


@click.group()
def main() -> None:
    """Greenlight - approve your coding agent's actions from your phone."""


@main.command()
@click.option("--device-id", help="Device ID (or GREENLIGHT_DEVICE_ID)")
@click.option("--server", help="Relay server URL (or GREENLIGHT_SERVER)")
@click.option("--project", help="Project name shown to the reviewer")
@click.option("--activity", is_flag=True, help="Stream the session transcript to the reviewer")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to ~/.greenlight/logs/hook.log")
def hook(
    device_id: str | None,
    server: str | None,
    project: str | None,
    activity: bool,
    verbose: bool,
) -> None:
    """Claude Code hook (PermissionRequest, UserPromptSubmit, Notification)."""
    config = _hook_config("claude-code", device_id=device_id, server=server, project=project)
    _run("claude-code", config, activity, verbose)


@main.command()
@click.option("--device-id", help="Device ID (or GREENLIGHT_DEVICE_ID)")
@click.option("--server", help="Relay server URL (or GREENLIGHT_SERVER)")
@click.option("--project", help="Project name (or GREENLIGHT_PROJECT)")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to ~/.greenlight/logs/hook.log")
def windsurf(
    device_id: str | None,
    server: str | None,
    project: str | None,
    verbose: bool,
) -> None:
    """Windsurf pre-action hook: exit 0 allows, exit 2 blocks."""
    config = _hook_config("windsurf", device_id=device_id, server=server, project=project)
    _run("windsurf", config, False, verbose)


@main.command(hidden=True)
@click.option("--server", required=True, help="Relay server URL")
@click.option("--timeout", type=float, default=10.0, help="Seconds before giving up")
def notify(server: str, timeout: float) -> None:
    """Send one notification (JSON on stdin) to the relay. Used by the hook."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        payload = parse_hook_input(click.get_text_stream("stdin").read())
    except ConfigurationError as e:
        logging.getLogger(__name__).warning(f"Dropping notification: {e}")
        sys.exit(1)
    with GreenlightClient(server, timeout=timeout) as client:
        client.notify(payload, timeout=timeout)


# =============================================================================
# Operator Commands
# =============================================================================


def _fmt_ts(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


@main.command()
def streams() -> None:
    """Show transcript streamers and whether they are alive."""
    config = GreenlightConfig()
    handles = list_handles(config.streamers_dir)
    if not handles:
        console.print("[dim]No transcript streamers recorded.[/dim]")
        return

    table = Table(title="Transcript Streamers")
    table.add_column("Session", style="cyan")
    table.add_column("Relay", style="cyan")
    table.add_column("PID")
    table.add_column("Tail PID")
    table.add_column("Status")
    table.add_column("Started", style="dim")
    table.add_column("Source", style="dim")

    for h in handles:
        alive = is_process_alive(h.pid)
        table.add_row(
            h.session_id[:12],
            h.relay_id[:12] or "-",
            str(h.pid),
            str(h.tail_pid or "-"),
            "[green]running[/green]" if alive else "[red]dead[/red]",
            _fmt_ts(h.started_at),
            h.source_path,
        )
    console.print(table)


@main.command()
@click.argument("session_id")
def stop(session_id: str) -> None:
    """Stop the transcript streamer for SESSION_ID."""
    config = GreenlightConfig()
    handle = load_handle(config.streamers_dir, session_id)
    if handle is None:
        console.print(f"[yellow]No streamer recorded for {session_id}[/yellow]")
        sys.exit(1)
    stop_worker(config.streamers_dir, handle)
    console.print(f"[green]Stopped streamer {handle.pid} for {session_id}[/green]")


@main.command()
def enrollments() -> None:
    """Show cached relay enrollments."""
    config = GreenlightConfig()
    with GreenlightClient(config.server) as client:
        sessions = SessionRegistry(config.enrolled_dir, client).list_sessions()
    if not sessions:
        console.print("[dim]No enrollments cached.[/dim]")
        return

    table = Table(title="Enrollments")
    table.add_column("Relay", style="cyan")
    table.add_column("Device", style="green")
    table.add_column("Project")
    table.add_column("Enrolled", style="dim")
    for s in sessions:
        table.add_row(s.relay_id, s.device_id, s.project or "-", _fmt_ts(s.enrolled_at))
    console.print(table)


@main.command()
@click.argument("relay_id")
def forget(relay_id: str) -> None:
    """Drop the cached enrollment for RELAY_ID (the next hook re-enrolls)."""
    config = GreenlightConfig()
    with GreenlightClient(config.server) as client:
        registry = SessionRegistry(config.enrolled_dir, client)
        if not registry.is_enrolled(relay_id):
            console.print(f"[yellow]No enrollment cached for {relay_id}[/yellow]")
            return
        registry.invalidate(relay_id)
    console.print(f"[green]Forgot enrollment for {relay_id}[/green]")
