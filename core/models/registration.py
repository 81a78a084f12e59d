"""Event registration models (read side used by participant login)."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class Registration(BaseModel):
    """A person's enrollment in one event, with the event's display fields."""

    id: UUID
    event_id: UUID
    event_name: str | None = None
    event_slug: str | None = None
    email: str
    first_name: str
    last_name: str
    short_code: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
