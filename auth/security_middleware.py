"""Security middleware for FastAPI - session cookie validation."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.session import SessionManager
from auth.exceptions import AuthenticationError, SessionExpiredError
from api.base import error_response, ErrorCodes


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates the session cookie.

    For protected routes:
    1. Extracts the signed session token from the session cookie
    2. Validates it via SessionManager
    3. Sets session and user_id in request.state

    Public paths never require a session, but a valid cookie sent to
    them is still attached to request.state (session refresh uses it).
    """

    PUBLIC_PATHS = [
        "/auth/otp/issue",
        "/auth/otp/verify",
        "/auth/session/create",
        "/auth/logout",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, session_manager: SessionManager, cookie_name: str = "session_token"):
        super().__init__(app)
        self._session_manager = session_manager
        self._cookie_name = cookie_name

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path + "/"):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        session_token = request.cookies.get(self._cookie_name)

        if self._is_public_path(request.url.path):
            if session_token:
                try:
                    session = self._session_manager.validate_session(session_token)
                except AuthenticationError:
                    session = None
                if session is not None:
                    request.state.session = session
                    request.state.user_id = session.user_id
            return await call_next(request)

        if not session_token:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                    getattr(request.state, "request_id", None),
                ).model_dump(mode="json"),
            )

        try:
            session = self._session_manager.validate_session(session_token)
        except SessionExpiredError:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.SESSION_EXPIRED,
                    "Session has expired",
                    getattr(request.state, "request_id", None),
                ).model_dump(mode="json"),
            )
        except AuthenticationError:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                    getattr(request.state, "request_id", None),
                ).model_dump(mode="json"),
            )

        request.state.user_id = session.user_id
        request.state.session = session

        return await call_next(request)
