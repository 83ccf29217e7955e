"""Per-session streamer handles.

Each hook invocation is a separate process, so the singleton worker per
session is tracked on disk under <state_dir>/streamers/:

    {session}.json      handle written by the manager (worker pid, relay_id)
    {session}.tail.pid  backing tail pid, written by the worker itself
    {session}.lock      held by the live worker for its whole lifetime
    {session}.spawn.lock  held by a hook while it checks/replaces the worker
"""

import json
import logging
import os
import signal
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

from greenlight.registry import safe_key

logger = logging.getLogger(__name__)


@dataclass
class StreamerHandle:
    """The live (or last known) worker for one session."""
    session_id: str
    relay_id: str
    pid: int
    source_path: str = ""
    tail_pid: int | None = None
    started_at: float = field(default_factory=time.time)


def handle_path(streamers_dir: Path, session_id: str) -> Path:
    return streamers_dir / f"{safe_key(session_id)}.json"


def tail_pid_path(streamers_dir: Path, session_id: str) -> Path:
    return streamers_dir / f"{safe_key(session_id)}.tail.pid"


def worker_lock_path(streamers_dir: Path, session_id: str) -> Path:
    return streamers_dir / f"{safe_key(session_id)}.lock"


def spawn_lock_path(streamers_dir: Path, session_id: str) -> Path:
    return streamers_dir / f"{safe_key(session_id)}.spawn.lock"


def read_pid(path: Path) -> int | None:
    """Read a PID from file, return None if missing or invalid."""
    try:
        if path.exists():
            pid = int(path.read_text().strip())
            return pid if pid > 0 else None
    except (ValueError, OSError):
        pass
    return None


def load_handle(streamers_dir: Path, session_id: str) -> StreamerHandle | None:
    """Load the handle for a session, including the worker-written tail pid."""
    path = handle_path(streamers_dir, session_id)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
        handle = StreamerHandle(**{
            k: v for k, v in data.items()
            if k in StreamerHandle.__dataclass_fields__
        })
    except (json.JSONDecodeError, TypeError, OSError) as e:
        logger.warning(f"Could not load streamer handle for {session_id[:8]}: {e}")
        return None
    handle.tail_pid = read_pid(tail_pid_path(streamers_dir, session_id))
    return handle


def save_handle(streamers_dir: Path, handle: StreamerHandle) -> None:
    """Persist a handle with atomic tmp+rename."""
    streamers_dir.mkdir(parents=True, exist_ok=True)
    path = handle_path(streamers_dir, handle.session_id)
    data = asdict(handle)
    data.pop("tail_pid")
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, indent=2))
    tmp.rename(path)


def remove_handle(streamers_dir: Path, session_id: str, pid: int | None = None) -> None:
    """Remove a session's handle.

    With ``pid`` set the handle is only removed if it still belongs to that
    worker, so an exiting worker never deletes its successor's handle.
    """
    path = handle_path(streamers_dir, session_id)
    try:
        if pid is not None and path.exists():
            stored = json.loads(path.read_text()).get("pid")
            if stored != pid:
                return
        path.unlink(missing_ok=True)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not remove streamer handle for {session_id[:8]}: {e}")


def list_handles(streamers_dir: Path) -> list[StreamerHandle]:
    """All recorded handles, newest first."""
    if not streamers_dir.exists():
        return []
    handles = []
    for path in streamers_dir.glob("*.json"):
        try:
            session_id = json.loads(path.read_text()).get("session_id", "")
        except (json.JSONDecodeError, OSError):
            continue
        handle = load_handle(streamers_dir, session_id) if session_id else None
        if handle:
            handles.append(handle)
    return sorted(handles, key=lambda h: h.started_at, reverse=True)


def is_process_alive(pid: int) -> bool:
    """Check if a process with given PID exists.

    Reaps the process first if it is our own exited child, so a zombie is
    not mistaken for a live worker.
    """
    try:
        reaped, _ = os.waitpid(pid, os.WNOHANG)
        if reaped == pid:
            return False
    except ChildProcessError:
        pass
    try:
        os.kill(pid, 0)  # Signal 0 = existence check, no actual signal sent
        return True
    except (ProcessLookupError, PermissionError):
        return False


def terminate_process(pid: int, timeout: float = 2.0) -> bool:
    """SIGTERM a process, escalating to SIGKILL if it outlives ``timeout``.

    Returns:
        True if the process is gone afterwards.
    """
    try:
        os.kill(pid, signal.SIGTERM)
    except (ProcessLookupError, PermissionError):
        return not is_process_alive(pid)

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not is_process_alive(pid):
            return True
        time.sleep(0.05)

    logger.warning(f"Process {pid} ignored SIGTERM, killing")
    try:
        os.kill(pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
    time.sleep(0.05)
    return not is_process_alive(pid)
