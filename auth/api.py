"""HTTP routes for participant authentication."""

import ipaddress

from fastapi import APIRouter, Query, Request, Response

from api.base import success_response
from auth.config import AuthConfig
from auth.exceptions import AuthenticationError
from auth.service import AuthService
from auth.types import (
    AuthenticatedUser,
    CreateSessionRequest,
    IssueCodeRequest,
    Session,
    VerifyCodeRequest,
)


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _current_session(request: Request) -> Session | None:
    return getattr(request.state, "session", None)


def _set_session_cookie(response: Response, config: AuthConfig, session: Session) -> None:
    response.set_cookie(
        key=config.session_cookie_name,
        value=session.token,
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
        max_age=session.max_age_seconds,
        path="/",
    )


def _user_payload(result: AuthenticatedUser) -> dict:
    user = result.user
    payload = {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
    }
    if result.registration is not None:
        payload.update({
            "firstName": result.registration.first_name,
            "lastName": result.registration.last_name,
            "eventName": result.registration.event_name,
            "eventSlug": result.registration.event_slug,
        })
    return payload


def create_auth_router(auth_service: AuthService, config: AuthConfig) -> APIRouter:
    """Create auth router with injected service."""
    router = APIRouter(tags=["auth"])

    @router.post("/otp/issue")
    def issue_code(request: Request, body: IssueCodeRequest):
        """Email a login code to a registered participant."""
        result = auth_service.issue_code(
            email=body.email,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return success_response(
            _request_id(request),
            eventName=result.event_name,
            expiresAt=result.expires_at,
        ).model_dump(mode="json")

    @router.post("/otp/verify")
    def verify_code(request: Request, response: Response, body: VerifyCodeRequest):
        """Verify a login code; sets the session cookie on success."""
        result = auth_service.verify_code(
            email=body.email,
            code=body.code,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        _set_session_cookie(response, config, result.session)
        return success_response(
            _request_id(request),
            user=_user_payload(result),
            redirectUrl=result.redirect_url,
        ).model_dump(mode="json")

    @router.post("/session/create")
    def create_session(request: Request, response: Response, body: CreateSessionRequest):
        """Exchange a handoff token (or refresh a live session) for a session cookie."""
        result = auth_service.create_session(
            email=body.email,
            user_id=body.user_id,
            token=body.token,
            current_session=_current_session(request),
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        _set_session_cookie(response, config, result.session)
        return success_response(
            _request_id(request),
            user=_user_payload(result),
        ).model_dump(mode="json")

    @router.post("/logout")
    def logout(request: Request, response: Response):
        """Logout - drop session record and clear cookie."""
        session_token = request.cookies.get(config.session_cookie_name)
        if session_token:
            auth_service.logout(
                session_token=session_token,
                ip_address=_get_client_ip(request),
            )
        response.delete_cookie(key=config.session_cookie_name, path="/")
        return success_response(
            _request_id(request),
            message="Logged out successfully",
        ).model_dump(mode="json")

    @router.get("/me")
    def get_current_user(request: Request):
        """Claims of the current session. Requires authentication."""
        session = _current_session(request)
        if session is None:
            raise AuthenticationError("Authentication required")
        return success_response(
            _request_id(request),
            user={
                "id": str(session.user_id),
                "email": session.email,
                "name": session.name,
                "role": session.role.value,
            },
            expiresAt=session.expires_at,
        ).model_dump(mode="json")

    return router


def create_admin_router(auth_service: AuthService) -> APIRouter:
    """Administrative auth maintenance routes. Session required (middleware)."""
    router = APIRouter(tags=["admin"])

    @router.post("/otp/cleanup")
    def cleanup_codes(request: Request):
        """Delete expired and stale used login codes."""
        deleted = auth_service.cleanup_codes(
            actor=_current_session(request),
            ip_address=_get_client_ip(request),
        )
        return success_response(
            _request_id(request),
            deletedCount=deleted,
            message=f"{deleted} login codes deleted",
        ).model_dump(mode="json")

    @router.get("/security-events")
    def security_events(
        request: Request,
        email: str | None = Query(None),
        limit: int = Query(100, ge=1, le=500),
    ):
        """Recent auth security events, newest first."""
        events = auth_service.recent_security_events(
            actor=_current_session(request),
            email=email,
            limit=limit,
            ip_address=_get_client_ip(request),
        )
        return success_response(_request_id(request), events=events).model_dump(mode="json")

    return router
