"""Exception hierarchy for the Lounge client.

Every error raised by this package derives from LoungeError so callers can
catch the whole family in one place. The connection state machine relies on
the split between retryable transport problems, auth failures (which trigger
a token refresh) and the terminal duplicate-identity condition.
"""

from __future__ import annotations


class LoungeError(Exception):
    """Base class for all Lounge client errors."""


class PairingError(LoungeError):
    """Pairing code could not be exchanged for a screen."""


class TokenRefreshError(LoungeError):
    """Lounge token batch refresh failed."""


class TransportError(LoungeError):
    """Network or HTTP failure. Retryable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(TransportError):
    """The bound session is no longer known to the service."""


class AuthFailureError(LoungeError):
    """The lounge token was rejected (HTTP 401)."""


class FramingError(LoungeError):
    """The long-poll stream could not be decoded."""


class DuplicateIdentityError(LoungeError):
    """Another remote already holds this identity. Never retried."""


class InvalidArgumentError(LoungeError, ValueError):
    """A command parameter is outside its allowed range."""


class NotConnectedError(LoungeError):
    """Operation requires a bound session."""
