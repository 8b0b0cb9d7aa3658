"""Exception taxonomy shared by all components."""

from __future__ import annotations


class KillSwitchError(Exception):
    """Base class for fatal killswitch errors."""


class ConfigError(KillSwitchError, ValueError):
    """Invalid, missing, or unreadable configuration."""


class FirewallError(KillSwitchError, RuntimeError):
    """The packet filter could not be queried or modified."""
