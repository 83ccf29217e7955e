"""Configuration for Greenlight.

Environment Variables:
    - GREENLIGHT_DEVICE_ID: Device ID paired with the Greenlight app (required)
    - GREENLIGHT_SERVER: Relay server URL (default: https://permit.dnmfarrell.com)
    - GREENLIGHT_PROJECT: Project name shown to the reviewer
    - PERMIT_RELAY_ID: Relay/correlation ID for the current conversation
      (GREENLIGHT_RELAY_ID is accepted too)

    Optional tuning:
    - GREENLIGHT_DECISION_TIMEOUT: Seconds to wait for a remote decision
    - GREENLIGHT_IDLE_TIMEOUT: Seconds of transcript silence before the
      streamer worker exits
    - GREENLIGHT_STATE_DIR: Where enrollment markers, streamer handles and
      logs live (default: ~/.greenlight)

Command-line flags passed to the hook override the environment.
"""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SERVER = "https://permit.dnmfarrell.com"


class ConfigurationError(Exception):
    """Required identity or hook input is missing.

    Surfaced to the host as a deny decision, never as a crash.
    """

    pass


class GreenlightConfig(BaseSettings):
    """Greenlight configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GREENLIGHT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # =========================================================================
    # Identity
    # =========================================================================
    server: str = Field(
        default=DEFAULT_SERVER,
        description="Greenlight relay server URL",
    )
    device_id: str | None = Field(
        default=None,
        description="Device ID paired with the Greenlight app",
    )
    project: str | None = Field(
        default=None,
        description="Project name shown alongside each request",
    )
    relay_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("relay_id", "PERMIT_RELAY_ID", "GREENLIGHT_RELAY_ID"),
        description="Correlation ID spanning one agent conversation",
    )

    # =========================================================================
    # Timeouts (seconds)
    # =========================================================================
    decision_timeout: float = Field(
        default=595.0,
        description="How long a permission request may wait for a human",
    )
    enroll_timeout: float = Field(default=30.0, description="Session enrollment timeout")
    notify_timeout: float = Field(default=10.0, description="Notification forward timeout")
    transcript_timeout: float = Field(default=5.0, description="Per-line transcript send timeout")
    idle_timeout: float = Field(
        default=300.0,
        description="Transcript silence after which the streamer worker exits",
    )

    # =========================================================================
    # Streaming
    # =========================================================================
    backfill_lines: int = Field(
        default=10,
        description="Recent transcript lines replayed when a worker starts",
    )
    max_inflight_sends: int = Field(
        default=8,
        description="Concurrent transcript sends before lines are dropped",
    )

    # =========================================================================
    # Local state
    # =========================================================================
    state_dir: Path = Field(
        default=Path.home() / ".greenlight",
        description="Base directory for markers, handles and logs",
    )

    @property
    def enrolled_dir(self) -> Path:
        return self.state_dir / "enrolled"

    @property
    def streamers_dir(self) -> Path:
        return self.state_dir / "streamers"

    @property
    def log_dir(self) -> Path:
        return self.state_dir / "logs"

    def ensure_dirs(self) -> None:
        """Ensure all required directories exist."""
        for path in (self.enrolled_dir, self.streamers_dir, self.log_dir):
            path.mkdir(parents=True, exist_ok=True)

    def require_device_id(self) -> str:
        """Return the device ID or raise ConfigurationError."""
        if not self.device_id:
            raise ConfigurationError(
                "Greenlight device ID not configured. "
                "See https://getgreenlight.github.io/support.html"
            )
        return self.device_id
