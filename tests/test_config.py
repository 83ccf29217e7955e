"""Tests for Greenlight configuration."""

from pathlib import Path

import pytest

from greenlight.config import DEFAULT_SERVER, ConfigurationError, GreenlightConfig


class TestDefaults:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GREENLIGHT_STATE_DIR")
        config = GreenlightConfig()
        assert config.server == DEFAULT_SERVER
        assert config.device_id is None
        assert config.relay_id is None
        assert config.decision_timeout == 595.0
        assert config.enroll_timeout == 30.0
        assert config.transcript_timeout == 5.0
        assert config.idle_timeout == 300.0
        assert config.state_dir == Path.home() / ".greenlight"

    def test_state_subdirectories(self, tmp_path):
        config = GreenlightConfig(state_dir=tmp_path)
        assert config.enrolled_dir == tmp_path / "enrolled"
        assert config.streamers_dir == tmp_path / "streamers"
        assert config.log_dir == tmp_path / "logs"

    def test_ensure_dirs(self, tmp_path):
        config = GreenlightConfig(state_dir=tmp_path / "gl")
        config.ensure_dirs()
        assert config.enrolled_dir.is_dir()
        assert config.streamers_dir.is_dir()
        assert config.log_dir.is_dir()


class TestEnvironment:
    def test_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("GREENLIGHT_DEVICE_ID", "dev-123")
        monkeypatch.setenv("GREENLIGHT_SERVER", "http://localhost:9000")
        monkeypatch.setenv("GREENLIGHT_IDLE_TIMEOUT", "12.5")
        config = GreenlightConfig()
        assert config.device_id == "dev-123"
        assert config.server == "http://localhost:9000"
        assert config.idle_timeout == 12.5

    def test_permit_relay_id(self, monkeypatch):
        monkeypatch.setenv("PERMIT_RELAY_ID", "relay-abc")
        assert GreenlightConfig().relay_id == "relay-abc"

    def test_greenlight_relay_id(self, monkeypatch):
        monkeypatch.setenv("GREENLIGHT_RELAY_ID", "relay-xyz")
        assert GreenlightConfig().relay_id == "relay-xyz"

    def test_keyword_overrides_environment(self, monkeypatch):
        monkeypatch.setenv("GREENLIGHT_DEVICE_ID", "from-env")
        assert GreenlightConfig(device_id="from-flag").device_id == "from-flag"

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("GREENLIGHT_PROJECT=from-dotenv\n")
        assert GreenlightConfig().project == "from-dotenv"


class TestRequireDeviceId:
    def test_returns_device_id(self):
        assert GreenlightConfig(device_id="d1").require_device_id() == "d1"

    @pytest.mark.parametrize("device_id", [None, ""])
    def test_missing_raises(self, device_id):
        with pytest.raises(ConfigurationError, match="device ID not configured"):
            GreenlightConfig(device_id=device_id).require_device_id()
