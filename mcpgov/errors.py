from __future__ import annotations


class ConfigError(ValueError):
    """Policy or keyword source is missing, unreadable or malformed."""


class SpawnError(RuntimeError):
    """The backend command could not be started."""


class BackendGone(RuntimeError):
    """The backend's input pipe is closed; nothing more can be forwarded."""
