"""
Session state store: typed per-category accessors over named TTL caches.

Each pending-slot category has its own cache, so categories expire and
evict independently and setting one never disturbs another. The store is
built once per process and handed to the orchestrator and handlers; no
cache lives at module level.

Usage:
    store = SessionStateStore()
    store.set_address_request("6281234567890", AwaitingAddress(category="lampu_mati"))
    slot = store.get_address_request("6281234567890")
    store.clear_address_request("6281234567890")
"""

import json
import logging
import time
from dataclasses import replace
from typing import Any, Optional

from src.cache.ttl_cache import CacheSweeper, TTLCache
from src.config import CacheConfig, settings
from src.schemas.slots import (
    AccumulatedPhotos,
    AwaitingAddress,
    AwaitingAddressConfirmation,
    AwaitingCancelConfirmation,
    AwaitingComplaintContact,
    AwaitingName,
    AwaitingServiceFormOffer,
)

logger = logging.getLogger(__name__)

# category -> capacity
SLOT_CAPACITIES: dict[str, int] = {
    "address_confirmation": 1000,
    "address_request": 1000,
    "cancel_confirmation": 500,
    "name_confirmation": 500,
    "service_form_offer": 500,
    "complaint_contact": 500,
    "photos": 500,
}


class SessionStateStore:
    """Owns every ephemeral per-user cache of the assistant."""

    def __init__(self, cache_config: Optional[CacheConfig] = None, clock=time.monotonic) -> None:
        config = cache_config or settings.cache
        self.max_photos = config.max_pending_photos
        ttl = config.pending_state_ttl_seconds

        self._slots: dict[str, TTLCache] = {
            category: TTLCache(capacity, ttl, name=category, clock=clock)
            for category, capacity in SLOT_CAPACITIES.items()
        }
        self.complaint_types = TTLCache(
            100, config.complaint_type_ttl_seconds, name="complaint_types", clock=clock
        )
        self.history = TTLCache(
            2000, config.history_ttl_seconds, name="conversation_history", clock=clock
        )
        self.service_search = TTLCache(
            500, config.service_search_ttl_seconds, name="service_search", clock=clock
        )
        self.sweeper = CacheSweeper(self.all_caches(), config.sweep_interval_seconds)

    def all_caches(self) -> list[TTLCache]:
        return [*self._slots.values(), self.complaint_types, self.history, self.service_search]

    # -- address confirmation --------------------------------------------

    def get_address_confirmation(self, user_id: str) -> Optional[AwaitingAddressConfirmation]:
        return self._slots["address_confirmation"].get(user_id)

    def set_address_confirmation(self, user_id: str, slot: AwaitingAddressConfirmation) -> None:
        self._slots["address_confirmation"].set(user_id, slot)

    def clear_address_confirmation(self, user_id: str) -> None:
        self._slots["address_confirmation"].delete(user_id)

    # -- address request -------------------------------------------------

    def get_address_request(self, user_id: str) -> Optional[AwaitingAddress]:
        return self._slots["address_request"].get(user_id)

    def set_address_request(self, user_id: str, slot: AwaitingAddress) -> None:
        self._slots["address_request"].set(user_id, slot)

    def clear_address_request(self, user_id: str) -> None:
        self._slots["address_request"].delete(user_id)

    # -- cancel confirmation ---------------------------------------------

    def get_cancel_confirmation(self, user_id: str) -> Optional[AwaitingCancelConfirmation]:
        return self._slots["cancel_confirmation"].get(user_id)

    def set_cancel_confirmation(self, user_id: str, slot: AwaitingCancelConfirmation) -> None:
        self._slots["cancel_confirmation"].set(user_id, slot)

    def clear_cancel_confirmation(self, user_id: str) -> None:
        self._slots["cancel_confirmation"].delete(user_id)

    # -- name confirmation -----------------------------------------------

    def get_name_confirmation(self, user_id: str) -> Optional[AwaitingName]:
        return self._slots["name_confirmation"].get(user_id)

    def set_name_confirmation(self, user_id: str, slot: AwaitingName) -> None:
        self._slots["name_confirmation"].set(user_id, slot)

    def clear_name_confirmation(self, user_id: str) -> None:
        self._slots["name_confirmation"].delete(user_id)

    # -- service form offer ----------------------------------------------

    def get_service_form_offer(self, user_id: str) -> Optional[AwaitingServiceFormOffer]:
        return self._slots["service_form_offer"].get(user_id)

    def set_service_form_offer(self, user_id: str, slot: AwaitingServiceFormOffer) -> None:
        self._slots["service_form_offer"].set(user_id, slot)

    def clear_service_form_offer(self, user_id: str) -> None:
        self._slots["service_form_offer"].delete(user_id)

    # -- complaint contact -----------------------------------------------

    def get_complaint_contact(self, user_id: str) -> Optional[AwaitingComplaintContact]:
        return self._slots["complaint_contact"].get(user_id)

    def set_complaint_contact(self, user_id: str, slot: AwaitingComplaintContact) -> None:
        self._slots["complaint_contact"].set(user_id, slot)

    def clear_complaint_contact(self, user_id: str) -> None:
        self._slots["complaint_contact"].delete(user_id)

    # -- photos ----------------------------------------------------------

    def add_pending_photo(self, user_id: str, url: str) -> int:
        """Remember a photo for the complaint being assembled; returns the count."""
        cache = self._slots["photos"]
        existing: Optional[AccumulatedPhotos] = cache.get(user_id)
        if existing is None:
            cache.set(user_id, AccumulatedPhotos(urls=(url,)))
            return 1
        if len(existing.urls) >= self.max_photos:
            return len(existing.urls)
        updated = replace(existing, urls=existing.urls + (url,), timestamp=time.time())
        cache.set(user_id, updated)
        return len(updated.urls)

    def pending_photo_count(self, user_id: str) -> int:
        existing: Optional[AccumulatedPhotos] = self._slots["photos"].get(user_id)
        return len(existing.urls) if existing else 0

    def consume_pending_photos(self, user_id: str, current_url: Optional[str] = None) -> Optional[str]:
        """Take every pending photo plus ``current_url``.

        Returns None without photos, the bare URL for one photo, otherwise a
        JSON array of at most ``max_photos`` URLs.
        """
        cache = self._slots["photos"]
        existing: Optional[AccumulatedPhotos] = cache.get(user_id)
        urls: list[str] = list(existing.urls) if existing else []
        if existing:
            cache.delete(user_id)
        if current_url and current_url not in urls:
            urls.append(current_url)
        if not urls:
            return None
        if len(urls) == 1:
            return urls[0]
        return json.dumps(urls[: self.max_photos])

    # -- whole-user helpers ----------------------------------------------

    def pending_categories(self, user_id: str) -> list[str]:
        return [name for name, cache in self._slots.items() if cache.has(user_id)]

    def clear_user(self, user_id: str) -> None:
        """Forget every pending slot and the cached history of one user."""
        for cache in self._slots.values():
            cache.delete(user_id)
        self.history.delete(user_id)
        logger.info("Cleared session state for %s", user_id)

    def get_stats(self) -> list[dict[str, Any]]:
        return [cache.get_stats() for cache in self.all_caches()]
