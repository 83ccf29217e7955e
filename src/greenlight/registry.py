"""Per-relay enrollment tracking.

Every hook invocation is a fresh process, so enrollment state lives on disk:
one marker per relay_id at <state_dir>/enrolled/{relay_id}.json. A marker
means the server already approved that relay_id for this device and no
network round-trip is needed.
"""

import fcntl
import json
import logging
import os
import re
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from pathlib import Path

from greenlight.client import GreenlightClient, GreenlightClientError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_key(key: str) -> str:
    """Make an identifier safe to use as a file name."""
    return _UNSAFE_CHARS.sub("_", key)


@dataclass
class Session:
    """Enrollment record for one relay_id."""
    relay_id: str
    device_id: str
    project: str | None = None
    enrolled: bool = True
    enrolled_at: float = field(default_factory=time.time)


class SessionRegistry:
    """Durable, idempotent enrollment markers keyed by relay_id."""

    def __init__(
        self,
        enrolled_dir: Path,
        client: GreenlightClient,
        timeout: float | None = None,
    ):
        self.enrolled_dir = enrolled_dir
        self.client = client
        self.timeout = timeout

    def _marker_path(self, relay_id: str) -> Path:
        return self.enrolled_dir / f"{safe_key(relay_id)}.json"

    @contextmanager
    def _lock(self, relay_id: str) -> Iterator[None]:
        """Exclusive per-relay lock so overlapping hooks never double-enroll."""
        self.enrolled_dir.mkdir(parents=True, exist_ok=True)
        lock_path = self.enrolled_dir / f".{safe_key(relay_id)}.lock"
        fd = os.open(str(lock_path), os.O_CREAT | os.O_RDWR)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            os.close(fd)  # Releases flock

    def load(self, relay_id: str) -> Session | None:
        """Load the enrollment marker for a relay_id, if any."""
        marker = self._marker_path(relay_id)
        if not marker.exists():
            return None
        try:
            data = json.loads(marker.read_text())
            return Session(**{
                k: v for k, v in data.items()
                if k in Session.__dataclass_fields__
            })
        except (json.JSONDecodeError, TypeError, OSError) as e:
            logger.warning(f"Could not read enrollment marker for {relay_id[:8]}: {e}")
            return None

    def is_enrolled(self, relay_id: str) -> bool:
        session = self.load(relay_id)
        return session is not None and session.enrolled

    def _save(self, session: Session) -> None:
        """Persist a marker with atomic tmp+rename."""
        marker = self._marker_path(session.relay_id)
        tmp = marker.with_suffix(".tmp")
        tmp.write_text(json.dumps(asdict(session), indent=2))
        tmp.rename(marker)

    def ensure_enrolled(
        self,
        relay_id: str,
        device_id: str,
        project: str | None = None,
    ) -> bool:
        """Make sure relay_id is enrolled, calling the server at most once.

        Args:
            relay_id: Conversation correlation ID.
            device_id: Device the relay belongs to.
            project: Optional project name recorded in the marker.

        Returns:
            True if the relay_id is (now) enrolled. False on rejection or
            error; nothing is persisted so the next invocation retries.
        """
        if not relay_id:
            return False
        if self.is_enrolled(relay_id):
            return True

        with self._lock(relay_id):
            # Another invocation may have enrolled while we waited
            if self.is_enrolled(relay_id):
                return True

            try:
                approved = self.client.enroll(device_id, relay_id, timeout=self.timeout)
            except GreenlightClientError as e:
                logger.warning(f"Enrollment failed for {relay_id[:8]}: {e}")
                return False

            if not approved:
                logger.info(f"Enrollment not approved for {relay_id[:8]}")
                return False

            try:
                self._save(Session(relay_id=relay_id, device_id=device_id, project=project))
            except OSError as e:
                logger.error(f"Could not save enrollment marker for {relay_id[:8]}: {e}")
            logger.info(f"Enrolled relay {relay_id[:8]}")
            return True

    def invalidate(self, relay_id: str) -> None:
        """Forget a cached enrollment (server said we are not enrolled)."""
        try:
            self._marker_path(relay_id).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove enrollment marker for {relay_id[:8]}: {e}")

    def list_sessions(self) -> list[Session]:
        """All enrollment markers, newest first."""
        if not self.enrolled_dir.exists():
            return []
        sessions = []
        for marker in self.enrolled_dir.glob("*.json"):
            try:
                data = json.loads(marker.read_text())
                sessions.append(Session(**{
                    k: v for k, v in data.items()
                    if k in Session.__dataclass_fields__
                }))
            except (json.JSONDecodeError, TypeError, OSError):
                continue
        return sorted(sessions, key=lambda s: s.enrolled_at, reverse=True)

    def cleanup_stale(self, max_age_days: int = 7) -> int:
        return prune_markers(self.enrolled_dir, max_age_days)


def prune_markers(enrolled_dir: Path, max_age_days: int = 7) -> int:
    """Remove enrollment markers older than max_age_days.

    Args:
        enrolled_dir: Directory holding the markers.
        max_age_days: Delete markers older than this many days.

    Returns:
        Number of markers removed.
    """
    if not enrolled_dir.exists():
        return 0

    cutoff = time.time() - (max_age_days * 86400)
    removed = 0
    for marker in enrolled_dir.glob("*.json"):
        try:
            if marker.stat().st_mtime < cutoff:
                marker.unlink()
                removed += 1
        except OSError:
            continue

    if removed:
        logger.info(f"Cleaned up {removed} stale enrollment markers")
    return removed
