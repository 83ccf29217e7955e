"""Greenlight transcript streamer.

A detached worker per session tails the agent's JSONL transcript and
forwards new records to the relay so the reviewer has context.

Usage:
    python -m greenlight.streamer --session-id ID --relay-id ID --source PATH ...

Hooks never run the worker directly; they call ensure_running().
"""

from greenlight.streamer.handle import StreamerHandle
from greenlight.streamer.manager import ensure_running, stop_worker

__all__ = ["StreamerHandle", "ensure_running", "stop_worker"]
