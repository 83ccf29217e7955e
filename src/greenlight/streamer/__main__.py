"""Entry point for the transcript streamer worker.

Usage:
    python -m greenlight.streamer --session-id S --relay-id R --source PATH \
        --device-id D --server URL [--project P]
"""

import argparse
import fcntl
import logging
import os
import sys
from pathlib import Path

from greenlight.config import DEFAULT_SERVER
from greenlight.streamer.handle import worker_lock_path


def _acquire_lock(lock_file: Path) -> "int | None":
    """Acquire an exclusive file lock so only one worker runs per session.

    Returns the lock file descriptor on success, None if another worker
    already holds the lock.
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(lock_file), os.O_CREAT | os.O_RDWR)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        return fd
    except OSError:
        os.close(fd)
        return None


def main():
    parser = argparse.ArgumentParser(description="Greenlight transcript streamer")
    parser.add_argument("--session-id", required=True)
    parser.add_argument("--relay-id", default="")
    parser.add_argument("--source", required=True, type=Path, help="JSONL transcript to follow")
    parser.add_argument("--device-id", required=True)
    parser.add_argument("--server", default=DEFAULT_SERVER)
    parser.add_argument("--project", default=None)
    parser.add_argument("--state-dir", type=Path, default=Path.home() / ".greenlight")
    parser.add_argument("--idle-timeout", type=float, default=300.0)
    parser.add_argument("--send-timeout", type=float, default=5.0)
    parser.add_argument("--backfill", type=int, default=10)
    parser.add_argument("--max-inflight", type=int, default=8)
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Singleton enforcement: one worker per session
    lock_fd = _acquire_lock(worker_lock_path(args.state_dir / "streamers", args.session_id))
    if lock_fd is None:
        print(f"A streamer for session {args.session_id} is already running. Exiting.", file=sys.stderr)
        sys.exit(0)
    # Lock is held for the lifetime of the process (released on exit)

    from greenlight.streamer.worker import run_worker

    run_worker(
        session_id=args.session_id,
        relay_id=args.relay_id,
        source=args.source,
        device_id=args.device_id,
        server=args.server,
        state_dir=args.state_dir,
        project=args.project,
        idle_timeout=args.idle_timeout,
        send_timeout=args.send_timeout,
        backfill=args.backfill,
        max_inflight=args.max_inflight,
    )


if __name__ == "__main__":
    main()
