"""Reconcile event registrations with cross-event user identities."""

import logging

from auth.database import AuthDatabase
from auth.exceptions import DependencyError
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.types import UserIdentity
from clients.postgres_client import DatabaseError
from core.models import Registration
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Ensures exactly one UserIdentity exists per verified registrant email.

    The first verification creates a participant identity. Later ones refresh
    the display name and the verified/last-login timestamps but keep the
    existing role, so staff and admins who also register for an event are
    not downgraded.
    """

    def __init__(self, auth_db: AuthDatabase, security_logger: SecurityLogger):
        self._auth_db = auth_db
        self._security_logger = security_logger

    def resolve(
        self,
        registration: Registration,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> UserIdentity:
        """Upsert the identity for a verified registrant.

        Raises:
            DependencyError: If the identity could not be written.
        """
        try:
            user, was_created = self._auth_db.upsert_participant(
                email=registration.email,
                name=registration.full_name,
                now=now_utc(),
            )
        except DatabaseError as e:
            logger.error(f"Identity upsert failed for {registration.email}: {e}")
            raise DependencyError("Could not resolve user identity") from e

        if was_created:
            logger.info(f"Created participant identity {user.id} for {user.email}")
            self._security_logger.log(
                SecurityEvent.USER_CREATED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"registration_id": str(registration.id)},
            )

        return user
