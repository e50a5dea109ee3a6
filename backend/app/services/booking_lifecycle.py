import logging
import os
from datetime import date
from pathlib import Path
from typing import Any, List, Optional

from app.models import Booking, BookingSelection, ServiceQuote
from app.services.booking_identity import BookingIdentity, Clock, booking_id_matches, utc_now
from app.services.booking_store import BookingStore, InMemoryBookingStore, SqliteBookingStore, from_document, to_document
from app.services.catalog import CatalogSource, ServiceCatalog, SqliteCatalogSource
from app.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidRatingError,
    InvalidSelectionError,
    InvalidStateError,
    NotAuthenticatedError,
)
from app.services.pricing import price

logger = logging.getLogger(__name__)

MIN_RATING = 0
MAX_RATING = 5


def _build_time_slots() -> List[str]:
    slots: List[str] = []
    for hour in range(8, 20):
        suffix = "AM" if hour < 12 else "PM"
        display_hour = hour if hour <= 12 else hour - 12
        slots.append(f"{display_hour}:00 {suffix}")
        slots.append(f"{display_hour}:30 {suffix}")
    return slots


TIME_SLOTS = _build_time_slots()

# The mobile time picker labels the noon slots as AM.
TIME_SLOT_ALIASES = {"12:00 AM": "12:00 PM", "12:30 AM": "12:30 PM"}


def normalize_owner(owner: Optional[str]) -> str:
    normalized = (owner or "").strip().lower()
    if not normalized:
        raise NotAuthenticatedError("You must be logged in to manage bookings")
    return normalized


def validate_rating(rating: Any) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRatingError("Rating must be a whole number")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise InvalidRatingError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return rating


class BookingLifecycle:
    """Creates, lists, cancels, completes and reviews bookings.

    Every operation takes the acting owner explicitly. Ownership is decided by
    the owner stored on the record and the id minted for that owner, never by
    what the caller claims about the record.
    """

    def __init__(
        self,
        catalog: ServiceCatalog,
        store: BookingStore,
        identity: Optional[BookingIdentity] = None,
        clock: Clock = utc_now,
        store_backend: str = "custom",
    ):
        self.catalog = catalog
        self.store = store
        self.identity = identity or BookingIdentity()
        self.clock = clock
        self.store_backend = store_backend

    async def quote(self, service_id: str) -> ServiceQuote:
        service = await self.catalog.resolve(service_id)
        breakdown = price(service.amount)
        return ServiceQuote(
            service=service,
            service_amount=breakdown.service_amount,
            gst_amount=breakdown.gst_amount,
            total_amount=breakdown.total_amount,
        )

    async def create_booking(self, owner: Optional[str], selection: BookingSelection) -> Booking:
        owner_email = normalize_owner(owner)
        created_at = self.clock()
        scheduled_date, scheduled_time = self._validate_selection(selection, today=created_at.date())
        payment_method = selection.payment_method.strip()

        service = await self.catalog.resolve(selection.service_id)
        breakdown = price(service.amount)

        for attempt in range(2):
            booking = Booking(
                id=self.identity.mint(owner_email, service.id, self.clock),
                service_id=service.id,
                service_name=service.name,
                owner_email=owner_email,
                service_amount=breakdown.service_amount,
                gst_amount=breakdown.gst_amount,
                total_amount=breakdown.total_amount,
                created_at=created_at,
                scheduled_date=scheduled_date.isoformat(),
                scheduled_time=scheduled_time,
                note=selection.note.strip(),
                status="Booked",
                payment_method=payment_method,
                image=service.image,
            )
            try:
                await self.store.create(booking.id, to_document(booking))
            except ConflictError:
                if attempt:
                    raise
                logger.warning("Booking id collision, retrying once: %s", booking.id)
                continue
            logger.info("Booking created: id=%s owner=%s total=%s", booking.id, owner_email, booking.total_amount)
            return booking
        raise ConflictError("Booking id collision")

    async def list_bookings(self, owner: Optional[str]) -> List[Booking]:
        owner_email = normalize_owner(owner)
        records = await self.store.list_all()

        bookings: List[Booking] = []
        for booking_id, document in records:
            if str(document.get("email") or "").strip().lower() != owner_email:
                continue
            try:
                booking = from_document(booking_id, document)
            except ValueError:
                logger.warning("Skipping malformed booking document: %s", booking_id)
                continue
            if not booking_id_matches(booking_id, owner_email, booking.service_id):
                logger.warning("Skipping booking whose id does not match its owner: %s", booking_id)
                continue
            bookings.append(booking)

        bookings.sort(key=lambda item: (item.created_at, item.id), reverse=True)
        return bookings

    async def get_booking(self, owner: Optional[str], booking_id: str) -> Booking:
        owner_email = normalize_owner(owner)
        return await self._load_owned(owner_email, booking_id)

    async def cancel_booking(self, owner: Optional[str], booking_id: str) -> None:
        owner_email = normalize_owner(owner)
        await self._load_owned(owner_email, booking_id)
        await self.store.delete(booking_id)
        logger.info("Booking cancelled: id=%s owner=%s", booking_id, owner_email)

    async def submit_review(self, owner: Optional[str], booking_id: str, review_text: str, rating: Any) -> Booking:
        owner_email = normalize_owner(owner)
        checked_rating = validate_rating(rating)
        booking = await self._load_owned(owner_email, booking_id)
        if booking.status != "Completed":
            raise InvalidStateError("Only completed bookings can be reviewed")
        if booking.review is not None or booking.rating is not None:
            raise InvalidStateError("Review already submitted")

        review = (review_text or "").strip()
        await self.store.update(booking_id, {"review": review, "rating": checked_rating})
        logger.info("Booking reviewed: id=%s rating=%s", booking_id, checked_rating)
        return booking.model_copy(update={"review": review, "rating": checked_rating})

    async def mark_completed(self, booking_id: str) -> Booking:
        document = await self.store.get(booking_id)
        try:
            booking = from_document(booking_id, document)
        except ValueError as exc:
            raise InvalidStateError("Booking record is malformed") from exc
        if booking.status == "Completed":
            raise InvalidStateError("Booking is already completed")

        await self.store.update(booking_id, {"status": "Completed"})
        logger.info("Booking completed: id=%s", booking_id)
        return booking.model_copy(update={"status": "Completed"})

    async def _load_owned(self, owner_email: str, booking_id: str) -> Booking:
        document = await self.store.get(booking_id)
        stored_owner = str(document.get("email") or "").strip().lower()
        if stored_owner != owner_email:
            raise ForbiddenError("Only the booking owner can change this booking")
        try:
            booking = from_document(booking_id, document)
        except ValueError as exc:
            raise InvalidStateError("Booking record is malformed") from exc
        if not booking_id_matches(booking_id, owner_email, booking.service_id):
            raise ForbiddenError("Only the booking owner can change this booking")
        return booking

    def _validate_selection(self, selection: BookingSelection, *, today: date) -> tuple[date, str]:
        if not selection.service_id.strip():
            raise InvalidSelectionError("Service is required")
        if not selection.date.strip() or not selection.time.strip():
            raise InvalidSelectionError("Please select date and time")
        try:
            scheduled_date = date.fromisoformat(selection.date.strip())
        except ValueError as exc:
            raise InvalidSelectionError("Invalid date; expected YYYY-MM-DD") from exc
        if scheduled_date < today:
            raise InvalidSelectionError("Scheduled date is in the past")

        scheduled_time = " ".join(selection.time.split()).upper()
        scheduled_time = TIME_SLOT_ALIASES.get(scheduled_time, scheduled_time)
        if scheduled_time not in TIME_SLOTS:
            raise InvalidSelectionError(f"Unknown time slot: {selection.time}")
        if not selection.payment_method.strip():
            raise InvalidSelectionError("Payment method is required")
        return scheduled_date, scheduled_time


default_db = str(Path(__file__).resolve().parents[2] / "data" / "bookings.sqlite3")


def build_booking_lifecycle() -> BookingLifecycle:
    backend = os.getenv("BOOKING_STORE_BACKEND", "sqlite").strip().lower()
    db_path = os.getenv("BOOKINGS_DB_PATH", default_db)
    store: BookingStore
    source: CatalogSource
    if backend == "firestore":
        from app.services.firestore_store import FirestoreBookingStore, FirestoreCatalogSource

        store = FirestoreBookingStore()
        source = FirestoreCatalogSource()
    elif backend == "memory":
        store = InMemoryBookingStore()
        source = SqliteCatalogSource(db_path=db_path)
    elif backend == "sqlite":
        store = SqliteBookingStore(db_path=db_path)
        source = SqliteCatalogSource(db_path=db_path)
    else:
        raise ValueError(f"Unknown BOOKING_STORE_BACKEND: {backend!r}. Allowed: sqlite, memory, firestore")
    return BookingLifecycle(catalog=ServiceCatalog(source), store=store, store_backend=backend)


booking_lifecycle = build_booking_lifecycle()
