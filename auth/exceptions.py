"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class InvalidRequestError(AuthError):
    """A required field is missing or malformed. Message is safe to show."""


class NotFoundError(AuthError):
    """No registrant or user matches the given identifiers."""


class RegistrantNotFoundError(NotFoundError):
    """Email has no event registration."""


class UserNotFoundError(NotFoundError):
    """No user identity for the given id/email pair."""


class AuthenticationError(AuthError):
    """Credential rejected. Subclasses never reveal which check failed."""


class InvalidCodeError(AuthenticationError):
    """
    One-time code is wrong, expired, already used, or unknown.

    All of these share one message so responses cannot be used as an oracle.
    """

    MESSAGE = "Invalid or expired code"

    def __init__(self, message: str = MESSAGE):
        super().__init__(message)


class InvalidTokenError(AuthenticationError):
    """Session or handoff token is malformed, tampered with, or of the wrong type."""


class SessionExpiredError(AuthenticationError):
    """Session has expired and user must re-authenticate."""


class PermissionDeniedError(AuthError):
    """Authenticated identity lacks the role required for the operation."""


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class DependencyError(AuthError):
    """Database, email gateway or signing failed. Logged in full, shown generically."""
