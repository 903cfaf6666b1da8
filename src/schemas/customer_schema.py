"""Citizen profile data."""

from typing import Optional

from pydantic import BaseModel


class CitizenProfile(BaseModel):
    """What the assistant remembers about a citizen between turns."""
    user_id: str
    name: Optional[str] = None
    phone: Optional[str] = None
