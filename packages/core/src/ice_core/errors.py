"""Exception hierarchy for the recertification engine.

Configuration problems surface before anything touches a remote backend.
Provider failures are raised to the engine, which isolates them per review
unit instead of aborting the run.
"""

from __future__ import annotations


class IceError(Exception):
    """Base class for every error raised by ice_core."""


class ConfigError(IceError, ValueError):
    """Invalid configuration: bad glob, unknown strategy/provider, missing key."""


class PluginError(IceError):
    """A configured plugin could not be found, initialised or executed."""


class ProviderError(IceError):
    """A Git hosting backend call failed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ProviderConflictError(ProviderError):
    """The backend rejected a push because the branch tip moved."""
