"""Transcript streamer worker.

Tails the session's JSONL transcript and forwards every new record to the
relay's /transcript endpoint. Runs as a detached process started by
greenlight.streamer.manager; one per session.

The backing `tail -F` process and the channel fed from it are acquired in
tail_source() and released on every exit path: idle timeout, tail exiting,
a fatal client-side rejection, or SIGTERM from a newer hook.
"""

import json
import logging
import os
import queue
import signal
import subprocess
import threading
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any

from greenlight.client import (
    GreenlightClient,
    GreenlightClientError,
    GreenlightConnectionError,
    GreenlightRateLimitError,
)
from greenlight.registry import prune_markers
from greenlight.streamer.handle import remove_handle, tail_pid_path

logger = logging.getLogger(__name__)

# Posted to the channel when the tail process closes its output, or when a
# fatal send error should end the worker without waiting for more input
_EOF = object()


def _pump(stream: IO[bytes], channel: queue.Queue) -> None:
    """Reader thread: move lines from the tail pipe into the channel."""
    try:
        for raw in iter(stream.readline, b""):
            channel.put(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
    except (OSError, ValueError):
        pass  # Pipe closed during shutdown
    finally:
        channel.put(_EOF)


def _stop_tail(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        proc.terminate()
        try:
            proc.wait(timeout=2)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
    if proc.stdout:
        proc.stdout.close()


@contextmanager
def tail_source(path: Path, backfill: int, pid_file: Path) -> Iterator[queue.Queue]:
    """Follow a growing file, yielding a channel of its lines.

    Starts `tail -n <backfill> -F <path>` (follows by name, so truncation and
    rotation are survived) plus a reader thread feeding a queue. The tail
    process and its pid file are released when the block exits, however it
    exits.

    Args:
        path: File to follow.
        backfill: How many existing lines to replay first.
        pid_file: Where to record the tail pid for orphan cleanup.

    Yields:
        Queue of decoded lines, terminated by an end-of-input sentinel if the
        tail process exits.
    """
    proc = subprocess.Popen(
        ["tail", "-n", str(max(backfill, 0)), "-F", str(path)],
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        stdin=subprocess.DEVNULL,
    )
    try:
        pid_file.write_text(str(proc.pid))
        channel: queue.Queue = queue.Queue()
        reader = threading.Thread(target=_pump, args=(proc.stdout, channel), daemon=True)
        reader.start()
        yield channel
    finally:
        _stop_tail(proc)
        try:
            if pid_file.exists() and pid_file.read_text().strip() == str(proc.pid):
                pid_file.unlink()
        except OSError:
            pass


def iter_lines(channel: queue.Queue, idle_timeout: float) -> Iterator[str]:
    """Yield lines from the channel until it ends or stays silent too long."""
    while True:
        try:
            line = channel.get(timeout=idle_timeout)
        except queue.Empty:
            logger.info(f"No transcript activity for {idle_timeout:.0f}s, exiting")
            return
        if line is _EOF:
            logger.info("Transcript channel closed, exiting")
            return
        yield line


class TranscriptForwarder:
    """Sends transcript records without letting a slow network stall the tail.

    At most ``max_inflight`` sends run at once; lines arriving while all
    slots are busy are dropped. Rate limiting, server errors and transport
    failures are logged and ignored. Any other 4xx marks the forwarder as
    failed, which ends the worker.
    """

    def __init__(
        self,
        client: GreenlightClient,
        device_id: str,
        session_id: str,
        relay_id: str,
        project: str | None = None,
        send_timeout: float = 5.0,
        max_inflight: int = 8,
        on_fatal: Callable[[], None] | None = None,
    ):
        self.client = client
        self.device_id = device_id
        self.session_id = session_id
        self.relay_id = relay_id
        self.project = project
        self.send_timeout = send_timeout
        self.dropped = 0
        self._slots = threading.BoundedSemaphore(max(max_inflight, 1))
        self._fatal = threading.Event()
        self._on_fatal = on_fatal
        self._executor = ThreadPoolExecutor(
            max_workers=max(max_inflight, 1),
            thread_name_prefix="transcript-send",
        )

    def __enter__(self) -> "TranscriptForwarder":
        return self

    def __exit__(self, exc_type: Any, *exc: object) -> None:
        # On SIGTERM/errors don't wait out pending sends
        self._executor.shutdown(wait=exc_type is None, cancel_futures=True)

    @property
    def failed(self) -> bool:
        return self._fatal.is_set()

    def build_payload(self, line: str) -> dict[str, Any] | None:
        """Wrap one transcript line, or None if it is blank or not JSON."""
        line = line.strip()
        if not line:
            return None
        try:
            data = json.loads(line)
        except ValueError:
            logger.debug(f"Skipping non-JSON transcript line: {line[:80]}")
            return None
        return {
            "device_id": self.device_id,
            "session_id": self.session_id,
            "project": self.project or "",
            "relay_id": self.relay_id,
            "data": data,
        }

    def submit(self, line: str) -> bool:
        """Queue a line for sending. Returns False if skipped or dropped."""
        payload = self.build_payload(line)
        if payload is None:
            return False
        if not self._slots.acquire(blocking=False):
            self.dropped += 1
            logger.debug(f"All send slots busy, dropped line ({self.dropped} so far)")
            return False
        future = self._executor.submit(self._send, payload)
        future.add_done_callback(lambda _: self._slots.release())
        return True

    def _send(self, payload: dict[str, Any]) -> None:
        try:
            self.client.send_transcript(payload, timeout=self.send_timeout)
        except GreenlightRateLimitError:
            logger.debug("Transcript send rate limited")
        except GreenlightConnectionError as e:
            logger.debug(f"Transcript send failed: {e}")
        except GreenlightClientError as e:
            if e.status_code is not None and 400 <= e.status_code < 500:
                logger.error(f"Transcript rejected by server, stopping: {e}")
                self._fatal.set()
                if self._on_fatal is not None:
                    self._on_fatal()
            else:
                logger.warning(f"Transcript send failed: {e}")


def _handle_sigterm(signum, frame):
    """Turn SIGTERM into SystemExit so every cleanup block runs."""
    logger.info("SIGTERM received, shutting down...")
    raise SystemExit(0)


def run_worker(
    session_id: str,
    relay_id: str,
    source: Path,
    device_id: str,
    server: str,
    state_dir: Path,
    project: str | None = None,
    idle_timeout: float = 300.0,
    send_timeout: float = 5.0,
    backfill: int = 10,
    max_inflight: int = 8,
) -> None:
    """Stream one session's transcript until idle, EOF, fatal error or SIGTERM."""
    signal.signal(signal.SIGTERM, _handle_sigterm)
    streamers_dir = state_dir / "streamers"
    streamers_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        f"Streamer started (PID {os.getpid()}) for {session_id[:8]} "
        f"relay={relay_id[:8]} source={source}"
    )

    try:
        with GreenlightClient(server, timeout=send_timeout) as client, \
                tail_source(source, backfill, tail_pid_path(streamers_dir, session_id)) as channel, \
                TranscriptForwarder(
                    client,
                    device_id=device_id,
                    session_id=session_id,
                    relay_id=relay_id,
                    project=project,
                    send_timeout=send_timeout,
                    max_inflight=max_inflight,
                    on_fatal=lambda: channel.put(_EOF),
                ) as forwarder:
            for line in iter_lines(channel, idle_timeout):
                if forwarder.failed:
                    break
                forwarder.submit(line)
    finally:
        remove_handle(streamers_dir, session_id, pid=os.getpid())
        prune_markers(state_dir / "enrolled")
        logger.info(f"Streamer for {session_id[:8]} stopped")
