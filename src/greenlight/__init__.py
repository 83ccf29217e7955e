"""Greenlight - remote approval hook for AI coding agents.

Forwards permission requests from an agent hook to the Greenlight relay
server, waits for a remote decision, and streams the session transcript
in the background so the reviewer has context.
"""

__version__ = "0.4.0"
