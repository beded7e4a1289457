"""User domain model.

A user is the identity behind one or more sessions. Anonymous users are
materialized on first session creation. The visitor number is assigned
lazily, at most once, and reused by every later session of the same user.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """Participant identity (anonymous or named)."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_anonymous: bool = False
    visitor_number: Optional[int] = Field(default=None, ge=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"from_attributes": True}
