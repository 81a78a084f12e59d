"""Participant authentication: login codes, identities and sessions."""

from auth.exceptions import (
    AuthError,
    InvalidRequestError,
    NotFoundError,
    RegistrantNotFoundError,
    UserNotFoundError,
    AuthenticationError,
    InvalidCodeError,
    InvalidTokenError,
    SessionExpiredError,
    PermissionDeniedError,
    RateLimitedError,
    DependencyError,
)
from auth.types import (
    UserRole,
    OneTimeCode,
    UserIdentity,
    Session,
    CodeIssueResult,
    AuthenticatedUser,
)
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.identity import IdentityResolver
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager
from auth.service import AuthService
from auth.security_middleware import AuthMiddleware
from auth.api import create_auth_router, create_admin_router
