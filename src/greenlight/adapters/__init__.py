"""Host adapters: map each agent's hook payload onto a DecisionRequest."""

from greenlight.adapters.base import HookEvent, HookKind, HostAdapter
from greenlight.adapters.claude import ClaudeCodeAdapter
from greenlight.adapters.windsurf import WindsurfAdapter

__all__ = [
    "HookEvent",
    "HookKind",
    "HostAdapter",
    "ClaudeCodeAdapter",
    "WindsurfAdapter",
    "get_adapter",
]


def get_adapter(agent: str) -> HostAdapter:
    """Return the adapter for a host tag."""
    if agent == WindsurfAdapter.agent:
        return WindsurfAdapter()
    return ClaudeCodeAdapter()
