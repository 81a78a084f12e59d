"""
Registration lookups for participant login.

Registrations are owned by the event-management side of the application;
this service only reads them. No user context is required: lookups happen
before the participant is authenticated.
"""

import logging

from clients.postgres_client import PostgresClient
from core.models import Registration

logger = logging.getLogger(__name__)


class RegistrationService:
    """Read-only access to event registrations."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def find_by_email(self, email: str) -> Registration | None:
        """
        Most recent registration for an email (case-insensitive), with its event.

        Returns:
            Registration, or None if the email never registered
        """
        row = self.postgres.execute_single(
            """
            SELECT r.id, r.event_id, e.name AS event_name, e.slug AS event_slug,
                   r.email, r.first_name, r.last_name, r.short_code, r.created_at
            FROM registrations r
            JOIN events e ON e.id = r.event_id
            WHERE lower(r.email) = lower(%s)
            ORDER BY r.created_at DESC
            LIMIT 1
            """,
            (email,),
        )
        if row is None:
            return None
        return Registration.model_validate(row)
