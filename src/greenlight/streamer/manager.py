"""Transcript streamer lifecycle management for hooks.

Provides ensure_running(), which hooks call on every invocation. It adopts
a live worker whose relay_id matches, replaces one whose relay_id changed
(conversation resumed under a new correlation id), and otherwise cleans up
whatever a dead worker left behind and spawns a fresh detached worker.

Only one hook at a time may check/replace the worker for a session: the
check runs under a non-blocking flock on {session}.spawn.lock.
"""

import fcntl
import logging
import os
import subprocess
import sys
import time
from pathlib import Path

from greenlight.config import GreenlightConfig
from greenlight.streamer.handle import (
    StreamerHandle,
    is_process_alive,
    load_handle,
    remove_handle,
    save_handle,
    spawn_lock_path,
    tail_pid_path,
    terminate_process,
)

logger = logging.getLogger(__name__)


def _build_command(
    session_id: str,
    relay_id: str,
    source_path: str,
    device_id: str,
    project: str | None,
    server: str,
    config: GreenlightConfig,
) -> list[str]:
    """Command line for a detached worker (python -m greenlight.streamer)."""
    cmd = [
        sys.executable, "-m", "greenlight.streamer",
        "--session-id", session_id,
        "--relay-id", relay_id,
        "--source", source_path,
        "--device-id", device_id,
        "--server", server,
        "--state-dir", str(config.state_dir),
        "--idle-timeout", str(config.idle_timeout),
        "--send-timeout", str(config.transcript_timeout),
        "--backfill", str(config.backfill_lines),
        "--max-inflight", str(config.max_inflight_sends),
    ]
    if project:
        cmd.extend(["--project", project])
    return cmd


def stop_worker(streamers_dir: Path, handle: StreamerHandle) -> None:
    """Terminate a worker and its backing tail process, then drop the handle."""
    if is_process_alive(handle.pid):
        logger.info(f"Stopping streamer {handle.pid} for {handle.session_id[:8]}")
        terminate_process(handle.pid)
    cleanup_orphans(streamers_dir, handle.session_id)
    remove_handle(streamers_dir, handle.session_id)


def cleanup_orphans(streamers_dir: Path, session_id: str) -> None:
    """Kill a tail process left behind by a dead worker and remove its pid file."""
    tail_file = tail_pid_path(streamers_dir, session_id)
    tail_pid = None
    try:
        if tail_file.exists():
            tail_pid = int(tail_file.read_text().strip())
    except (ValueError, OSError):
        pass

    if tail_pid and is_process_alive(tail_pid):
        logger.info(f"Killing orphaned tail {tail_pid} for {session_id[:8]}")
        terminate_process(tail_pid, timeout=1.0)

    try:
        tail_file.unlink(missing_ok=True)
    except OSError:
        pass


def _spawn_worker(
    session_id: str,
    relay_id: str,
    source_path: str,
    device_id: str,
    project: str | None,
    server: str,
    config: GreenlightConfig,
) -> StreamerHandle:
    """Spawn the worker as a fully detached process and record its handle."""
    cmd = _build_command(session_id, relay_id, source_path, device_id, project, server, config)
    config.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = config.log_dir / "streamer.log"

    with open(log_file, "a") as logf:
        proc = subprocess.Popen(
            cmd,
            stdout=logf,
            stderr=logf,
            stdin=subprocess.DEVNULL,
            start_new_session=True,  # Survive the hook process, ignore its signals
        )

    handle = StreamerHandle(
        session_id=session_id,
        relay_id=relay_id,
        pid=proc.pid,
        source_path=source_path,
    )
    save_handle(config.streamers_dir, handle)
    logger.info(f"Started streamer {proc.pid} for {session_id[:8]} (relay {relay_id[:8]})")
    return handle


def ensure_running(
    session_id: str,
    relay_id: str,
    source_path: str | None,
    device_id: str,
    project: str | None,
    server: str,
    config: GreenlightConfig,
) -> StreamerHandle | None:
    """Ensure exactly one transcript streamer runs for this session.

    Fire-and-forget: only blocks for the liveness check and, when needed,
    terminating the previous worker and spawning a new one.

    Args:
        session_id: Host session ID, keys the singleton worker.
        relay_id: Correlation ID the worker tags each record with.
        source_path: JSONL transcript to tail.
        device_id: Device ID sent with each record.
        project: Optional project name sent with each record.
        server: Relay server URL.
        config: Greenlight configuration (state dir, timeouts).

    Returns:
        The adopted or newly started handle, or None when streaming does not
        apply (no session, no transcript) or another hook holds the spawn lock
        and no handle is recorded yet.
    """
    if not session_id or not source_path or not Path(source_path).exists():
        return None

    streamers_dir = config.streamers_dir
    streamers_dir.mkdir(parents=True, exist_ok=True)

    lock_fd = os.open(str(spawn_lock_path(streamers_dir, session_id)), os.O_CREAT | os.O_RDWR)
    try:
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            # Another hook is checking/replacing this session's worker
            time.sleep(0.2)
            return load_handle(streamers_dir, session_id)

        handle = load_handle(streamers_dir, session_id)
        if handle and is_process_alive(handle.pid):
            if handle.relay_id == relay_id:
                return handle
            logger.info(
                f"Relay changed for {session_id[:8]} "
                f"({handle.relay_id[:8]} -> {relay_id[:8]}), replacing streamer"
            )
            stop_worker(streamers_dir, handle)
        else:
            # Previous worker died without cleaning up
            cleanup_orphans(streamers_dir, session_id)
            remove_handle(streamers_dir, session_id)

        return _spawn_worker(
            session_id, relay_id, source_path, device_id, project, server, config,
        )
    finally:
        os.close(lock_fd)  # Releases flock
