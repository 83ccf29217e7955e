"""Pytest configuration for Greenlight tests."""

import os

import pytest

from greenlight.config import GreenlightConfig
from tests.relay_stub import RELAY_URL, RelayStub


@pytest.fixture(autouse=True)
def clean_greenlight_env(monkeypatch, tmp_path):
    """Clear Greenlight environment variables and keep state inside tmp_path."""
    greenlight_vars = [k for k in os.environ if k.startswith("GREENLIGHT_")]
    for var in greenlight_vars:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("PERMIT_RELAY_ID", raising=False)

    # Avoid loading a local .env file
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GREENLIGHT_STATE_DIR", str(tmp_path / "state"))

    yield


@pytest.fixture
def config(tmp_path) -> GreenlightConfig:
    return GreenlightConfig(
        device_id="d1",
        server=RELAY_URL,
        state_dir=tmp_path / "state",
    )


@pytest.fixture
def relay() -> RelayStub:
    return RelayStub()
