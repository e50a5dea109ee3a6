import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from app.models import BookingSelection
from app.services.booking_identity import BookingIdentity
from app.services.booking_lifecycle import TIME_SLOTS, BookingLifecycle
from app.services.booking_store import InMemoryBookingStore, to_document
from app.services.catalog import ServiceCatalog, SqliteCatalogSource
from app.services.errors import (
    BookingNotFoundError,
    ConflictError,
    ForbiddenError,
    InvalidAmountError,
    InvalidRatingError,
    InvalidSelectionError,
    InvalidStateError,
    NotAuthenticatedError,
    ServiceNotFoundError,
    StoreUnavailableError,
)
from app.services.pricing import round2


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _lifecycle(tmp_path, store=None, clock=None, identity=None) -> BookingLifecycle:
    source = SqliteCatalogSource(db_path=str(tmp_path / "catalog.sqlite3"), seed=False)
    source.add_service("cleaning", "svc1", "Full Home Cleaning", "100.00", "cleaning1.png")
    source.add_service("plumbing", "svc2", "Leak Repair", "89.99")
    source.add_service("painting", "svc3", "Wall Painting", "33.33")
    source.add_service("repairing", "broken", "Broken Price", "free")
    return BookingLifecycle(
        catalog=ServiceCatalog(source),
        store=store or InMemoryBookingStore(),
        identity=identity,
        clock=clock or FakeClock(datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)),
    )


def _selection(service_id: str = "svc1", **overrides) -> BookingSelection:
    values = dict(
        service_id=service_id,
        date="2024-01-01",
        time="10:00 AM",
        note="ring bell",
        payment_method="Cash on Delivery",
    )
    values.update(overrides)
    return BookingSelection(**values)


async def _complete(lifecycle: BookingLifecycle, owner: str, service_id: str = "svc1"):
    booking = await lifecycle.create_booking(owner, _selection(service_id))
    return await lifecycle.mark_completed(booking.id)


def test_time_slots_cover_morning_to_evening():
    assert TIME_SLOTS[0] == "8:00 AM"
    assert "12:00 PM" in TIME_SLOTS
    assert "12:30 PM" in TIME_SLOTS
    assert TIME_SLOTS[-1] == "7:30 PM"
    assert len(TIME_SLOTS) == 24


def test_create_booking_scenario(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))

    assert booking.service_amount == Decimal("100.00")
    assert booking.gst_amount == Decimal("18.00")
    assert booking.total_amount == Decimal("118.00")
    assert booking.status == "Booked"
    assert booking.owner_email == "a@x.com"
    assert booking.service_name == "Full Home Cleaning"
    assert booking.note == "ring bell"
    assert booking.payment_method == "Cash on Delivery"
    assert booking.scheduled_date == "2024-01-01"
    assert booking.scheduled_time == "10:00 AM"
    assert booking.image == "cleaning1.png"
    assert booking.id == "a@x.com_svc1_1704096000000"

    stored = asyncio.run(lifecycle.store.get(booking.id))
    assert stored["totalAmount"] == "118.00"
    assert stored["createdAt"] == "2024-01-01T08:00:00+00:00"
    assert "review" not in stored and "rating" not in stored


def test_total_is_amount_plus_rounded_gst_for_created_bookings(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    for service_id in ("svc1", "svc2", "svc3"):
        booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection(service_id)))
        assert booking.gst_amount == round2(booking.service_amount * Decimal("0.18"))
        assert booking.total_amount == booking.service_amount + booking.gst_amount


def test_owner_is_normalized_and_required(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("  A@X.com ", _selection()))
    assert booking.owner_email == "a@x.com"
    for owner in (None, "", "   "):
        with pytest.raises(NotAuthenticatedError):
            asyncio.run(lifecycle.create_booking(owner, _selection()))
        with pytest.raises(NotAuthenticatedError):
            asyncio.run(lifecycle.list_bookings(owner))
        with pytest.raises(NotAuthenticatedError):
            asyncio.run(lifecycle.cancel_booking(owner, booking.id))
        with pytest.raises(NotAuthenticatedError):
            asyncio.run(lifecycle.submit_review(owner, booking.id, "ok", 3))


def test_unknown_service_aborts_without_persisting(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    with pytest.raises(ServiceNotFoundError):
        asyncio.run(lifecycle.create_booking("a@x.com", _selection("missing")))
    assert asyncio.run(lifecycle.store.list_all()) == []


def test_bad_catalog_price_aborts_without_persisting(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    with pytest.raises(InvalidAmountError):
        asyncio.run(lifecycle.create_booking("a@x.com", _selection("broken")))
    assert asyncio.run(lifecycle.store.list_all()) == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"date": ""},
        {"time": ""},
        {"date": "01/02/2024"},
        {"date": "2023-12-31"},
        {"time": "9:15 AM"},
        {"time": "21:00"},
        {"payment_method": "  "},
        {"service_id": " "},
    ],
)
def test_invalid_selection_is_rejected(tmp_path, overrides):
    lifecycle = _lifecycle(tmp_path)
    with pytest.raises(InvalidSelectionError):
        asyncio.run(lifecycle.create_booking("a@x.com", _selection(**overrides)))


def test_time_label_is_normalized(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection(time=" 7:30  pm")))
    assert booking.scheduled_time == "7:30 PM"


@pytest.mark.parametrize("label,stored", [("12:00 AM", "12:00 PM"), ("12:30 am", "12:30 PM")])
def test_noon_slots_sent_as_am_are_stored_as_pm(tmp_path, label, stored):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection(time=label)))
    assert booking.scheduled_time == stored
    document = asyncio.run(lifecycle.store.get(booking.id))
    assert document["selectedTime"] == stored


def test_same_millisecond_creates_get_distinct_ids(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    first = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    second = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    assert first.id != second.id
    assert {item.id for item in asyncio.run(lifecycle.list_bookings("a@x.com"))} == {first.id, second.id}


def test_conflict_is_retried_once_with_fresh_id(tmp_path):
    store = InMemoryBookingStore()
    clock = FakeClock(datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc))
    device_one = _lifecycle(tmp_path, store=store, clock=clock, identity=BookingIdentity())
    device_two = _lifecycle(tmp_path, store=store, clock=clock, identity=BookingIdentity())

    first = asyncio.run(device_one.create_booking("a@x.com", _selection()))
    second = asyncio.run(device_two.create_booking("a@x.com", _selection()))
    assert first.id != second.id
    assert len(asyncio.run(store.list_all())) == 2


def test_conflict_twice_is_surfaced(tmp_path):
    class AlwaysConflicting(InMemoryBookingStore):
        def __init__(self):
            super().__init__()
            self.attempts = 0

        async def create(self, booking_id, record):
            self.attempts += 1
            raise ConflictError(f"Booking already exists: {booking_id}")

    store = AlwaysConflicting()
    lifecycle = _lifecycle(tmp_path, store=store)
    with pytest.raises(ConflictError):
        asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    assert store.attempts == 2


def test_list_only_returns_own_bookings(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    mine = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    asyncio.run(lifecycle.create_booking("b@x.com", _selection()))
    asyncio.run(lifecycle.create_booking("a@x.co", _selection()))

    listed = asyncio.run(lifecycle.list_bookings("a@x.com"))
    assert [item.id for item in listed] == [mine.id]
    assert all(item.owner_email == "a@x.com" for item in listed)


def test_list_ignores_records_whose_id_belongs_to_someone_else(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    victim = asyncio.run(lifecycle.create_booking("b@x.com", _selection()))
    forged = asyncio.run(lifecycle.store.get(victim.id))
    forged["email"] = "a@x.com"
    asyncio.run(lifecycle.store.create("b@x.com_svc1_1", forged))

    assert asyncio.run(lifecycle.list_bookings("a@x.com")) == []


def test_list_skips_malformed_documents(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    good = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    asyncio.run(lifecycle.store.create("a@x.com_svc1_5", {"email": "a@x.com", "serviceId": "svc1"}))

    assert [item.id for item in asyncio.run(lifecycle.list_bookings("a@x.com"))] == [good.id]


def test_list_is_most_recent_first(tmp_path):
    clock = FakeClock(datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc))
    lifecycle = _lifecycle(tmp_path, clock=clock)
    created = []
    for service_id in ("svc1", "svc2", "svc3"):
        created.append(asyncio.run(lifecycle.create_booking("a@x.com", _selection(service_id))))
        clock.advance(minutes=5)

    listed = asyncio.run(lifecycle.list_bookings("a@x.com"))
    assert [item.id for item in listed] == [created[2].id, created[1].id, created[0].id]


def test_list_for_owner_without_bookings_is_empty(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    assert asyncio.run(lifecycle.list_bookings("nobody@x.com")) == []


def test_list_surfaces_store_outage_instead_of_empty_list(tmp_path):
    class Down(InMemoryBookingStore):
        async def list_all(self):
            raise StoreUnavailableError("Booking store is unavailable")

    lifecycle = _lifecycle(tmp_path, store=Down())
    with pytest.raises(StoreUnavailableError):
        asyncio.run(lifecycle.list_bookings("a@x.com"))


def test_cancel_removes_booking_from_listing(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    kept = asyncio.run(lifecycle.create_booking("a@x.com", _selection("svc2")))

    asyncio.run(lifecycle.cancel_booking("a@x.com", booking.id))
    assert [item.id for item in asyncio.run(lifecycle.list_bookings("a@x.com"))] == [kept.id]


def test_cancel_completed_booking_is_allowed(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    completed = asyncio.run(_complete(lifecycle, "a@x.com"))
    asyncio.run(lifecycle.cancel_booking("a@x.com", completed.id))
    assert asyncio.run(lifecycle.list_bookings("a@x.com")) == []


def test_cancel_by_other_owner_is_forbidden(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    with pytest.raises(ForbiddenError):
        asyncio.run(lifecycle.cancel_booking("b@x.com", booking.id))
    assert asyncio.run(lifecycle.get_booking("a@x.com", booking.id)).id == booking.id


def test_cancel_missing_booking_is_not_found(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    with pytest.raises(BookingNotFoundError):
        asyncio.run(lifecycle.cancel_booking("a@x.com", "a@x.com_svc1_1"))


def test_review_on_booked_booking_is_invalid_state(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    with pytest.raises(InvalidStateError):
        asyncio.run(lifecycle.submit_review("a@x.com", booking.id, "Great", 4))

    stored = asyncio.run(lifecycle.store.get(booking.id))
    assert "review" not in stored
    assert "rating" not in stored


def test_review_rating_bounds(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    lowest = asyncio.run(_complete(lifecycle, "a@x.com"))
    highest = asyncio.run(_complete(lifecycle, "a@x.com", "svc2"))

    for bad in (6, -1, True, 4.5, "5"):
        with pytest.raises(InvalidRatingError):
            asyncio.run(lifecycle.submit_review("a@x.com", lowest.id, "meh", bad))

    reviewed = asyncio.run(lifecycle.submit_review("a@x.com", lowest.id, " Not great ", 0))
    assert reviewed.review == "Not great"
    assert reviewed.rating == 0
    assert asyncio.run(lifecycle.submit_review("a@x.com", highest.id, "Spotless", 5)).rating == 5

    stored = asyncio.run(lifecycle.store.get(lowest.id))
    assert stored["review"] == "Not great"
    assert stored["rating"] == 0


def test_review_is_attached_only_once(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    completed = asyncio.run(_complete(lifecycle, "a@x.com"))
    asyncio.run(lifecycle.submit_review("a@x.com", completed.id, "Great", 4))
    with pytest.raises(InvalidStateError):
        asyncio.run(lifecycle.submit_review("a@x.com", completed.id, "Changed my mind", 1))
    assert asyncio.run(lifecycle.store.get(completed.id))["rating"] == 4


def test_review_by_other_owner_is_forbidden(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    completed = asyncio.run(_complete(lifecycle, "a@x.com"))
    with pytest.raises(ForbiddenError):
        asyncio.run(lifecycle.submit_review("b@x.com", completed.id, "Hijack", 1))


def test_review_after_cancel_is_not_found(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    completed = asyncio.run(_complete(lifecycle, "a@x.com"))
    asyncio.run(lifecycle.cancel_booking("a@x.com", completed.id))
    with pytest.raises(BookingNotFoundError):
        asyncio.run(lifecycle.submit_review("a@x.com", completed.id, "Great", 5))


def test_mark_completed_transitions_once(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    completed = asyncio.run(lifecycle.mark_completed(booking.id))
    assert completed.status == "Completed"
    assert asyncio.run(lifecycle.get_booking("a@x.com", booking.id)).status == "Completed"

    with pytest.raises(InvalidStateError):
        asyncio.run(lifecycle.mark_completed(booking.id))
    with pytest.raises(BookingNotFoundError):
        asyncio.run(lifecycle.mark_completed("a@x.com_svc1_1"))


def test_quote_matches_frozen_booking_prices(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    quote = asyncio.run(lifecycle.quote("svc2"))
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection("svc2")))
    assert (quote.service_amount, quote.gst_amount, quote.total_amount) == (
        booking.service_amount,
        booking.gst_amount,
        booking.total_amount,
    )


def test_booking_is_a_snapshot_of_catalog_price(tmp_path):
    lifecycle = _lifecycle(tmp_path)
    booking = asyncio.run(lifecycle.create_booking("a@x.com", _selection()))
    lifecycle.catalog.source.add_service("cleaning", "svc1", "Full Home Cleaning", "150.00")

    listed = asyncio.run(lifecycle.list_bookings("a@x.com"))
    assert listed[0].id == booking.id
    assert listed[0].total_amount == Decimal("118.00")
    assert to_document(listed[0])["serviceAmount"] == "100.00"
