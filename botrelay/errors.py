from __future__ import annotations


class RelayError(RuntimeError):
    """Base class for errors raised by the relay core."""


class ConfigError(RelayError, ValueError):
    """Session configuration is incomplete or invalid.

    Raised before any adapter is created and never retried.
    """


class AdapterConstructionError(RelayError):
    """The protocol adapter factory failed to produce an instance."""


class NotConnectedError(RelayError):
    pass


class PrivilegeError(RelayError, PermissionError):
    """The bot lacks the elevated capability an admin action needs."""


class UnknownIntentError(RelayError, ValueError):
    """An admin intent was unrecognized or malformed."""
