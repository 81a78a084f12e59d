"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from core.models import Registration


class UserRole(str, Enum):
    """Roles a user identity can hold."""

    PARTICIPANT = "participant"
    STAFF = "staff"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class OneTimeCode(BaseModel):
    """A login code awaiting verification."""

    id: UUID
    email: str
    code: str = Field(..., description="Fixed-length digit string")
    event_id: UUID | None = None
    created_at: datetime
    expires_at: datetime
    used: bool  # Required - fail closed, no default

    model_config = {"from_attributes": True}


class UserIdentity(BaseModel):
    """Cross-event account, one per email."""

    id: UUID
    email: EmailStr
    name: str | None = None
    role: UserRole
    email_verified_at: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class Session(BaseModel):
    """A signed session and the claims it carries."""

    token: str = Field(..., description="Signed session token (JWT)")
    user_id: UUID
    email: str
    name: str | None = None
    role: UserRole
    issued_at: datetime
    expires_at: datetime

    @property
    def max_age_seconds(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())


class IssueCodeRequest(BaseModel):
    """Request payload for a login code. Validated by the service, not here."""

    email: str | None = None


class VerifyCodeRequest(BaseModel):
    """Request payload for code verification."""

    email: str | None = None
    code: str | None = None


class CreateSessionRequest(BaseModel):
    """Request payload for session creation: email plus userId or handoff token."""

    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    user_id: UUID | None = Field(None, alias="userId")
    token: str | None = None


class CodeIssueResult(BaseModel):
    """Result of a login code request."""

    sent: bool
    email: str
    event_name: str | None
    expires_at: datetime


class AuthenticatedUser(BaseModel):
    """Identity and session returned after a successful login."""

    user: UserIdentity
    session: Session
    registration: Registration | None = None
    redirect_url: str | None = None
