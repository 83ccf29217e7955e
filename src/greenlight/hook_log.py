"""Hook event log - one JSONL line per hook invocation.

    <state_dir>/logs/hook_events.jsonl   (tail -f friendly, rotated at 10MB)

Tool inputs are truncated; nothing here may break a hook.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_LOG_BYTES = 10_000_000


def log_hook_event(
    log_dir: Path,
    event: str,
    session_id: str = "",
    extra: dict | None = None,
) -> None:
    """Append a lean entry to the hook event log.

    Args:
        log_dir: Directory holding hook_events.jsonl
        event: Hook event name (e.g. "PermissionRequest", "pre_run_command")
        session_id: Host session ID (shortened in the log)
        extra: Optional dict merged into the entry (tool, behavior, ...)
    """
    log_file = log_dir / "hook_events.jsonl"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        _rotate_if_needed(log_file)

        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "event": event,
            "session_id": session_id[:12] if session_id else "",
        }
        if extra:
            entry.update(_scrub(extra))

        with open(log_file, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")
    except OSError as e:
        logger.debug(f"Could not write hook event log: {e}")


def _rotate_if_needed(log_file: Path) -> None:
    if log_file.exists() and log_file.stat().st_size > MAX_LOG_BYTES:
        rotated = log_file.with_suffix(".jsonl.1")
        rotated.unlink(missing_ok=True)
        log_file.rename(rotated)


def _scrub(data: dict) -> dict:
    """Return a copy with oversized fields truncated."""
    scrubbed = {}
    for k, v in data.items():
        s = v if isinstance(v, str) else json.dumps(v, default=str)
        scrubbed[k] = s[:500] + "..." if len(s) > 500 else v
    return scrubbed
