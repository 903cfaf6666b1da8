"""Tests for the per-user session state store."""

import json

import pytest

from src.conversation.session_state import SLOT_CAPACITIES, SessionStateStore
from src.schemas.slots import (
    AwaitingAddress,
    AwaitingAddressConfirmation,
    AwaitingCancelConfirmation,
    AwaitingComplaintContact,
    AwaitingName,
    AwaitingServiceFormOffer,
)
from tests.conftest import USER_ID, ManualClock, make_config

OTHER_USER = "6289876543210"

# category -> sample slot
SAMPLE_SLOTS = {
    "address_confirmation": AwaitingAddressConfirmation(
        address="dekat masjid", category="jalan_rusak", description="Jalan berlubang"
    ),
    "address_request": AwaitingAddress(category="lampu_mati"),
    "cancel_confirmation": AwaitingCancelConfirmation(
        target_type="complaint", target_id="LAP-20250101-001", reason="sudah diperbaiki"
    ),
    "name_confirmation": AwaitingName(name="Budi"),
    "service_form_offer": AwaitingServiceFormOffer(service_slug="surat-keterangan-usaha"),
    "complaint_contact": AwaitingComplaintContact(
        data={"kategori": "sampah", "alamat": "Jl. Merdeka 5"}, waiting_for="name"
    ),
}


def _accessors(store: SessionStateStore, category: str):
    return (
        getattr(store, f"get_{category}"),
        getattr(store, f"set_{category}"),
        getattr(store, f"clear_{category}"),
    )


class TestSlotCategories:
    def setup_method(self):
        self.clock = ManualClock()
        self.store = SessionStateStore(make_config().cache, clock=self.clock)

    @pytest.mark.parametrize("category", sorted(SAMPLE_SLOTS))
    def test_set_get_clear(self, category):
        get, set_, clear = _accessors(self.store, category)
        slot = SAMPLE_SLOTS[category]

        assert get(USER_ID) is None
        set_(USER_ID, slot)
        assert get(USER_ID) == slot
        assert self.store.pending_categories(USER_ID) == [category]

        clear(USER_ID)
        assert get(USER_ID) is None

    @pytest.mark.parametrize("category", sorted(SAMPLE_SLOTS))
    def test_slot_is_per_user(self, category):
        get, set_, _ = _accessors(self.store, category)
        set_(USER_ID, SAMPLE_SLOTS[category])
        assert get(OTHER_USER) is None

    @pytest.mark.parametrize("category", sorted(SAMPLE_SLOTS))
    def test_clearing_one_category_keeps_the_others(self, category):
        for name, slot in SAMPLE_SLOTS.items():
            _accessors(self.store, name)[1](USER_ID, slot)

        _accessors(self.store, category)[2](USER_ID)

        remaining = self.store.pending_categories(USER_ID)
        assert category not in remaining
        assert len(remaining) == len(SAMPLE_SLOTS) - 1

    def test_categories_are_independent(self):
        self.store.set_address_request(USER_ID, AwaitingAddress(category="lampu_mati"))
        self.store.set_cancel_confirmation(
            USER_ID, AwaitingCancelConfirmation(target_type="complaint", target_id="LAP-20250101-001")
        )

        self.store.clear_address_request(USER_ID)

        assert self.store.get_address_request(USER_ID) is None
        assert self.store.get_cancel_confirmation(USER_ID).target_id == "LAP-20250101-001"
        assert self.store.pending_categories(USER_ID) == ["cancel_confirmation"]

    def test_slots_expire_with_pending_ttl(self):
        self.store.set_address_request(USER_ID, AwaitingAddress(category="lampu_mati"))
        self.clock.advance(599)
        assert self.store.get_address_request(USER_ID) is not None
        self.clock.advance(1)
        assert self.store.get_address_request(USER_ID) is None

    def test_last_write_wins(self):
        self.store.set_address_request(USER_ID, AwaitingAddress(category="lampu_mati"))
        self.store.set_address_request(USER_ID, AwaitingAddress(category="sampah"))
        assert self.store.get_address_request(USER_ID).category == "sampah"

    def test_clearing_missing_slot_is_harmless(self):
        self.store.clear_name_confirmation(USER_ID)
        assert self.store.pending_categories(USER_ID) == []

    def test_slots_are_frozen(self):
        slot = AwaitingName(name="Budi")
        with pytest.raises(AttributeError):
            slot.name = "Siti"


class TestPendingPhotos:
    def setup_method(self):
        self.store = SessionStateStore(make_config().cache, clock=ManualClock())

    def test_count_grows(self):
        assert self.store.add_pending_photo(USER_ID, "https://img.test/a.jpg") == 1
        assert self.store.add_pending_photo(USER_ID, "https://img.test/b.jpg") == 2
        assert self.store.pending_photo_count(USER_ID) == 2

    def test_photos_are_capped(self):
        for i in range(7):
            count = self.store.add_pending_photo(USER_ID, f"https://img.test/{i}.jpg")
        assert count == 5
        assert len(json.loads(self.store.consume_pending_photos(USER_ID))) == 5
        assert self.store.pending_photo_count(USER_ID) == 0

    def test_single_photo_is_bare_url(self):
        assert self.store.consume_pending_photos(USER_ID, "https://img.test/a.jpg") == "https://img.test/a.jpg"

    def test_current_photo_appended_once(self):
        self.store.add_pending_photo(USER_ID, "https://img.test/a.jpg")
        consumed = self.store.consume_pending_photos(USER_ID, "https://img.test/a.jpg")
        assert consumed == "https://img.test/a.jpg"

    def test_pending_and_current_become_json_array(self):
        self.store.add_pending_photo(USER_ID, "https://img.test/a.jpg")
        consumed = self.store.consume_pending_photos(USER_ID, "https://img.test/b.jpg")
        assert json.loads(consumed) == ["https://img.test/a.jpg", "https://img.test/b.jpg"]

    def test_no_photos(self):
        assert self.store.consume_pending_photos(USER_ID) is None


class TestWholeUser:
    def setup_method(self):
        self.store = SessionStateStore(make_config().cache, clock=ManualClock())

    def test_clear_user_forgets_everything(self):
        self.store.set_address_request(USER_ID, AwaitingAddress(category="lampu_mati"))
        self.store.set_name_confirmation(OTHER_USER, AwaitingName(name="Siti"))
        self.store.history.set(USER_ID, [])
        self.store.add_pending_photo(USER_ID, "https://img.test/a.jpg")

        self.store.clear_user(USER_ID)

        assert self.store.pending_categories(USER_ID) == []
        assert self.store.history.get(USER_ID) is None
        assert self.store.get_name_confirmation(OTHER_USER).name == "Siti"

    def test_stats_cover_every_cache(self):
        names = {stats["name"] for stats in self.store.get_stats()}
        assert set(SLOT_CAPACITIES) <= names
        assert {"conversation_history", "complaint_types", "service_search"} <= names

    def test_all_caches_listed(self):
        assert len(self.store.all_caches()) == len(SLOT_CAPACITIES) + 3
