"""
Citizen profile store.

Keeps the name and phone a citizen gave the assistant, keyed by user id.
The real deployment persists these in the channel service; this in-memory
store is what the orchestrator talks to.
"""

import logging
from typing import Optional

from src.schemas.customer_schema import CitizenProfile
from src.utils import normalize_phone

logger = logging.getLogger(__name__)


class ProfileStore:
    """Per-user name/phone memory."""

    def __init__(self, profiles: Optional[list[CitizenProfile]] = None) -> None:
        self._profiles: dict[str, CitizenProfile] = {p.user_id: p for p in profiles or []}

    def get(self, user_id: str) -> Optional[CitizenProfile]:
        return self._profiles.get(user_id)

    def get_name(self, user_id: str) -> Optional[str]:
        profile = self._profiles.get(user_id)
        return profile.name if profile else None

    def get_phone(self, user_id: str) -> Optional[str]:
        profile = self._profiles.get(user_id)
        return profile.phone if profile else None

    def save(self, user_id: str, name: Optional[str] = None, phone: Optional[str] = None) -> CitizenProfile:
        """Create or update a profile; only the given fields change."""
        existing = self._profiles.get(user_id) or CitizenProfile(user_id=user_id)
        update = {}
        if name:
            update["name"] = name.strip()
        if phone:
            update["phone"] = normalize_phone(phone)
        profile = existing.model_copy(update=update)
        self._profiles[user_id] = profile
        logger.info("Profile saved for %s (name=%s, phone=%s)", user_id, bool(profile.name), bool(profile.phone))
        return profile

    def reset(self) -> None:
        self._profiles.clear()
