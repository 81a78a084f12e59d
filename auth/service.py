"""Authentication service - orchestrates the participant login code flow."""

import logging
from datetime import timedelta
from urllib.parse import urlencode
from uuid import UUID, uuid4

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.identity import IdentityResolver
from auth.otp import generate_code, normalize_email, is_well_formed_code
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager
from auth.types import (
    AuthenticatedUser,
    CodeIssueResult,
    OneTimeCode,
    Session,
    UserIdentity,
    UserRole,
)
from auth.exceptions import (
    AuthenticationError,
    DependencyError,
    InvalidCodeError,
    InvalidRequestError,
    InvalidTokenError,
    PermissionDeniedError,
    RateLimitedError,
    RegistrantNotFoundError,
    UserNotFoundError,
)
from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.postgres_client import DatabaseError
from core.models import Registration
from core.services.registration_service import RegistrationService
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AuthService:
    """Orchestrates passwordless participant login.

    Handles:
    - Login code issuance (registrants only)
    - Code verification, identity resolution and session creation
    - Session creation from a handoff token or an existing session
    - Code cleanup (admin only)
    - Logout
    """

    AUTO_LOGIN_PATH = "/auth/auto-login"

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        registrations: RegistrationService,
        identity_resolver: IdentityResolver,
        session_manager: SessionManager,
        issue_rate_limiter: RateLimiter,
        verify_rate_limiter: RateLimiter,
        email_client: EmailGatewayClient,
        security_logger: SecurityLogger,
    ):
        self._config = config
        self._auth_db = auth_db
        self._registrations = registrations
        self._identity_resolver = identity_resolver
        self._session_manager = session_manager
        self._issue_rate_limiter = issue_rate_limiter
        self._verify_rate_limiter = verify_rate_limiter
        self._email_client = email_client
        self._security_logger = security_logger

    def _find_registration(self, email: str) -> Registration | None:
        try:
            return self._registrations.find_by_email(email)
        except DatabaseError as e:
            logger.error(f"Registration lookup failed for {email}: {e}")
            raise DependencyError("Registration lookup failed") from e

    def _check_rate_limit(
        self,
        limiter: RateLimiter,
        email: str,
        ip_address: str | None,
        action: str,
    ) -> None:
        try:
            limiter.check_rate_limit(email)
        except RateLimitedError as e:
            self._security_logger.log(
                SecurityEvent.RATE_LIMITED,
                email=email,
                ip_address=ip_address,
                details={"action": action, "retry_after": e.retry_after_seconds},
            )
            raise

    def issue_code(
        self,
        email: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> CodeIssueResult:
        """Issue a login code to a registered participant.

        Flow:
        1. Normalize and validate email
        2. Look up registration
        3. Check per-email rate limit
        4. Generate and store code (older live codes stay valid)
        5. Send email
        6. Log security events

        Raises:
            InvalidRequestError: If email is missing or malformed.
            RegistrantNotFoundError: If no registration uses this email.
            RateLimitedError: If too many codes were requested.
            DependencyError: If storing or sending the code fails.
        """
        email = normalize_email(email)

        registration = self._find_registration(email)
        if registration is None:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "registrant_not_found"},
            )
            raise RegistrantNotFoundError("No registration found for this email")

        self._check_rate_limit(self._issue_rate_limiter, email, ip_address, "issue")

        now = now_utc()
        code = OneTimeCode(
            id=uuid4(),
            email=email,
            code=generate_code(self._config.otp_length),
            event_id=registration.event_id,
            created_at=now,
            expires_at=now + timedelta(minutes=self._config.otp_expiry_minutes),
            used=False,
        )

        try:
            self._auth_db.store_code(code)
        except DatabaseError as e:
            logger.error(f"Storing login code failed for {email}: {e}")
            raise DependencyError("Could not store login code") from e

        self._security_logger.log(
            SecurityEvent.OTP_REQUESTED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"event_id": str(registration.event_id)},
        )

        try:
            self._email_client.send_login_code(
                email=email,
                code=code.code,
                first_name=registration.first_name,
                event_name=registration.event_name,
                expires_in_minutes=self._config.otp_expiry_minutes,
                app_name=self._config.app_name,
            )
        except EmailGatewayError as e:
            raise DependencyError("Could not send login code") from e

        self._security_logger.log(
            SecurityEvent.OTP_SENT,
            email=email,
            ip_address=ip_address,
        )

        return CodeIssueResult(
            sent=True,
            email=email,
            event_name=registration.event_name,
            expires_at=code.expires_at,
        )

    def verify_code(
        self,
        email: str | None,
        code: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """Verify a login code, resolve the identity and create a session.

        Flow:
        1. Validate input
        2. Check per-email attempt limit
        3. Consume the code (single conditional update)
        4. Load registration for display fields
        5. Upsert user identity
        6. Create session and single-use handoff redirect
        7. Reset attempt limit, log security events

        Wrong, expired, used and unknown codes are indistinguishable.

        Raises:
            InvalidRequestError: If email or code is missing.
            InvalidCodeError: If no live code matches.
            RegistrantNotFoundError: If the registration disappeared.
            RateLimitedError: If too many attempts were made.
            DependencyError: If consuming the code or writing the identity fails.
        """
        if code is None or not str(code).strip():
            raise InvalidRequestError("Email and code are required")
        email = normalize_email(email)
        code = str(code).strip()

        self._check_rate_limit(self._verify_rate_limiter, email, ip_address, "verify")

        consumed = None
        if is_well_formed_code(code, self._config.otp_length):
            try:
                consumed = self._auth_db.consume_code(email, code, now_utc())
            except DatabaseError as e:
                logger.error(f"Consuming login code failed for {email}: {e}")
                raise DependencyError("Could not verify login code") from e

        if consumed is None:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "code_rejected"},
            )
            raise InvalidCodeError()

        registration = self._find_registration(email)
        if registration is None:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "registrant_not_found"},
            )
            raise RegistrantNotFoundError("Participant not found")

        user = self._identity_resolver.resolve(registration, ip_address, user_agent)
        session = self._session_manager.create_session(user)

        self._verify_rate_limiter.reset_rate_limit(email)
        self._issue_rate_limiter.reset_rate_limit(email)

        self._security_logger.log(
            SecurityEvent.OTP_VERIFIED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"code_id": str(consumed.id)},
        )
        self._security_logger.log(
            SecurityEvent.SESSION_CREATED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return AuthenticatedUser(
            user=user,
            session=session,
            registration=registration,
            redirect_url=self._handoff_redirect(user),
        )

    def _handoff_redirect(self, user: UserIdentity) -> str:
        """Absolute auto-login URL carrying a single-use handoff token.

        The token rides in the fragment so it is never sent to a server.
        Falls back to the app root when the handoff cannot be stored; the
        session cookie is already set by then.
        """
        base_url = self._config.app_base_url.rstrip("/")
        try:
            handoff = self._session_manager.issue_handoff_token(user)
        except DatabaseError as e:
            logger.warning(f"Handoff token not stored for {user.email}: {e}", exc_info=True)
            return f"{base_url}/"
        return f"{base_url}{self.AUTO_LOGIN_PATH}#{urlencode({'email': user.email, 'token': handoff})}"

    def create_session(
        self,
        email: str | None,
        user_id: UUID | None = None,
        token: str | None = None,
        current_session: Session | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """Create a participant session from a handoff token or a live session.

        With `token`, the handoff token from the verification redirect must
        match `email`. With `user_id`, the caller's current session must
        belong to that same user (session refresh).

        Raises:
            InvalidRequestError: If email, or both user_id and token, are missing.
            InvalidTokenError: If the proof does not match.
            UserNotFoundError: If no identity matches user id and email.
            PermissionDeniedError: If the identity is not a participant.
        """
        email = normalize_email(email)
        if user_id is None and not token:
            raise InvalidRequestError("userId or token is required")

        if token:
            user_id = self._session_manager.verify_handoff_token(token, email)
        elif current_session is None or current_session.user_id != user_id:
            self._security_logger.log(
                SecurityEvent.SESSION_REJECTED,
                email=email,
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "no_matching_session"},
            )
            raise InvalidTokenError("A valid session for this user is required")

        user = self._auth_db.get_user_by_id(user_id)
        if user is None or user.email != email:
            raise UserNotFoundError("User not found")

        if user.role != UserRole.PARTICIPANT:
            self._security_logger.log(
                SecurityEvent.PERMISSION_DENIED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                details={"action": "create_session", "role": user.role.value},
            )
            raise PermissionDeniedError("User is not allowed to use participant login")

        session = self._session_manager.create_session(user)
        self._auth_db.update_last_login(user.id)

        self._security_logger.log(
            SecurityEvent.SESSION_CREATED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return AuthenticatedUser(user=user, session=session)

    def _require_admin(self, actor: Session, action: str, ip_address: str | None) -> None:
        if actor.role.value not in self._config.admin_roles:
            self._security_logger.log(
                SecurityEvent.PERMISSION_DENIED,
                email=actor.email,
                user_id=actor.user_id,
                ip_address=ip_address,
                details={"action": action, "role": actor.role.value},
            )
            raise PermissionDeniedError("Administrator role required")

    def cleanup_codes(self, actor: Session, ip_address: str | None = None) -> int:
        """Delete expired codes, used codes past the retention window and spent handoffs.

        Returns:
            Number of codes deleted.

        Raises:
            PermissionDeniedError: If actor is not an administrator.
        """
        self._require_admin(actor, "otp_cleanup", ip_address)

        now = now_utc()
        deleted = self._auth_db.cleanup_codes(
            retention=timedelta(hours=self._config.otp_retention_hours),
            now=now,
        )
        handoffs_deleted = self._auth_db.cleanup_handoffs(now=now)
        logger.info(f"OTP cleanup removed {deleted} codes and {handoffs_deleted} handoffs")

        self._security_logger.log(
            SecurityEvent.OTP_CLEANUP,
            email=actor.email,
            user_id=actor.user_id,
            ip_address=ip_address,
            details={"deleted": deleted, "handoffs_deleted": handoffs_deleted},
        )
        return deleted

    def recent_security_events(
        self,
        actor: Session,
        email: str | None = None,
        limit: int = 100,
        ip_address: str | None = None,
    ) -> list[dict]:
        """Latest security events, optionally for one email. Admin only."""
        self._require_admin(actor, "security_events", ip_address)
        return self._security_logger.get_recent_events(
            email=email.strip().lower() if email else None,
            limit=limit,
        )

    def logout(self, session_token: str, ip_address: str | None = None) -> None:
        """Revoke session (logout). Safe to call with invalid token."""
        try:
            session = self._session_manager.validate_session(session_token)
            email, user_id = session.email, session.user_id
        except AuthenticationError:
            email, user_id = None, None

        self._session_manager.revoke_session(session_token)

        self._security_logger.log(
            SecurityEvent.SESSION_REVOKED,
            email=email,
            user_id=user_id,
            ip_address=ip_address,
        )

    def validate_session(self, token: str) -> Session:
        """Validate session token.

        Raises:
            SessionExpiredError: If session expired.
            InvalidTokenError: If token is not a valid session.
        """
        return self._session_manager.validate_session(token)
