"""
Exception types raised at the application's boundaries.
"""

from typing import Any, Optional


class HConnectError(Exception):
    """Base class for errors that are reported to the user as notifications."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class AuthError(HConnectError):
    """The identity provider rejected a request (bad credentials, bad code, ...)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class GatewayError(HConnectError):
    """A table read or write failed (constraint violation, RLS denial, network)."""

    def __init__(self, message: str, code: Optional[str] = None,
                 status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.code = code
        self.status = status
        self.details = details


class ValidationError(HConnectError):
    """A form failed a local check; raised before any network call."""
