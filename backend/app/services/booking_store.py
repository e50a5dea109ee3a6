import copy
import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Protocol, Tuple

from app.models import Booking
from app.services.errors import BookingNotFoundError, ConflictError, StoreUnavailableError
from app.services.store_calls import run_blocking

logger = logging.getLogger(__name__)

StoredRecord = Tuple[str, Dict[str, Any]]


def format_money(value: Decimal) -> str:
    # Amounts finer than cents are kept exact rather than rounded on the wire.
    if value.as_tuple().exponent >= -2:  # type: ignore[operator]
        return f"{value:.2f}"
    return str(value)


def to_document(booking: Booking) -> Dict[str, Any]:
    document: Dict[str, Any] = {
        "serviceId": booking.service_id,
        "serviceName": booking.service_name,
        "email": booking.owner_email,
        "serviceAmount": format_money(booking.service_amount),
        "gstAmount": format_money(booking.gst_amount),
        "totalAmount": format_money(booking.total_amount),
        "createdAt": booking.created_at.isoformat(),
        "selectedDate": booking.scheduled_date,
        "selectedTime": booking.scheduled_time,
        "note": booking.note,
        "status": booking.status,
        "paymentMethod": booking.payment_method,
        "image": booking.image,
    }
    if booking.review is not None:
        document["review"] = booking.review
    if booking.rating is not None:
        document["rating"] = booking.rating
    return document


def from_document(booking_id: str, document: Mapping[str, Any]) -> Booking:
    """Decode a stored document; raises ``ValueError`` when it is malformed."""
    try:
        created_at = datetime.fromisoformat(str(document["createdAt"]).replace("Z", "+00:00"))
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return Booking(
            id=booking_id,
            service_id=document["serviceId"],
            service_name=document.get("serviceName") or document["serviceId"],
            owner_email=document["email"],
            service_amount=Decimal(str(document["serviceAmount"])),
            gst_amount=Decimal(str(document["gstAmount"])),
            total_amount=Decimal(str(document["totalAmount"])),
            created_at=created_at,
            scheduled_date=document.get("selectedDate") or "",
            scheduled_time=document.get("selectedTime") or "",
            note=document.get("note") or "",
            status=document.get("status") or "Booked",
            payment_method=document.get("paymentMethod") or "",
            image=document.get("image"),
            review=document.get("review"),
            rating=document.get("rating"),
        )
    except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
        raise ValueError(f"Malformed booking document: {booking_id}") from exc


class BookingStore(Protocol):
    """Flat collection of booking documents keyed by booking id."""

    async def create(self, booking_id: str, record: Dict[str, Any]) -> None:
        ...

    async def get(self, booking_id: str) -> Dict[str, Any]:
        ...

    async def list_all(self) -> List[StoredRecord]:
        ...

    async def update(self, booking_id: str, patch: Dict[str, Any]) -> None:
        ...

    async def delete(self, booking_id: str) -> None:
        ...


class InMemoryBookingStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._records: Dict[str, Dict[str, Any]] = {}

    async def create(self, booking_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            if booking_id in self._records:
                raise ConflictError(f"Booking already exists: {booking_id}")
            self._records[booking_id] = copy.deepcopy(record)

    async def get(self, booking_id: str) -> Dict[str, Any]:
        with self._lock:
            record = self._records.get(booking_id)
            if record is None:
                raise BookingNotFoundError("Booking not found")
            return copy.deepcopy(record)

    async def list_all(self) -> List[StoredRecord]:
        with self._lock:
            return [(booking_id, copy.deepcopy(record)) for booking_id, record in self._records.items()]

    async def update(self, booking_id: str, patch: Dict[str, Any]) -> None:
        with self._lock:
            record = self._records.get(booking_id)
            if record is None:
                raise BookingNotFoundError("Booking not found")
            record.update(copy.deepcopy(patch))

    async def delete(self, booking_id: str) -> None:
        with self._lock:
            if self._records.pop(booking_id, None) is None:
                raise BookingNotFoundError("Booking not found")


@dataclass
class SqliteBookingStore:
    db_path: str

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS booking_documents (
                        id TEXT PRIMARY KEY,
                        document_json TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                conn.commit()

    def _create_sync(self, booking_id: str, record: Dict[str, Any]) -> None:
        try:
            with self._lock:
                with self._connect() as conn:
                    conn.execute(
                        "INSERT INTO booking_documents (id, document_json, updated_at) VALUES (?, ?, ?)",
                        (booking_id, json.dumps(record), datetime.now(timezone.utc).isoformat()),
                    )
                    conn.commit()
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Booking already exists: {booking_id}") from exc
        except sqlite3.Error as exc:
            logger.exception("Booking create failed: %s", booking_id)
            raise StoreUnavailableError("Booking store is unavailable") from exc

    def _get_sync(self, booking_id: str) -> Dict[str, Any]:
        try:
            with self._lock:
                with self._connect() as conn:
                    row = conn.execute(
                        "SELECT document_json FROM booking_documents WHERE id = ?",
                        (booking_id,),
                    ).fetchone()
        except sqlite3.Error as exc:
            logger.exception("Booking read failed: %s", booking_id)
            raise StoreUnavailableError("Booking store is unavailable") from exc
        if not row:
            raise BookingNotFoundError("Booking not found")
        return self._safe_json_object(row["document_json"])

    def _list_sync(self) -> List[StoredRecord]:
        try:
            with self._lock:
                with self._connect() as conn:
                    rows = conn.execute("SELECT id, document_json FROM booking_documents").fetchall()
        except sqlite3.Error as exc:
            logger.exception("Booking listing failed")
            raise StoreUnavailableError("Booking store is unavailable") from exc
        return [(row["id"], self._safe_json_object(row["document_json"])) for row in rows]

    def _update_sync(self, booking_id: str, patch: Dict[str, Any]) -> None:
        try:
            with self._lock:
                with self._connect() as conn:
                    row = conn.execute(
                        "SELECT document_json FROM booking_documents WHERE id = ?",
                        (booking_id,),
                    ).fetchone()
                    if not row:
                        raise BookingNotFoundError("Booking not found")
                    document = self._safe_json_object(row["document_json"])
                    document.update(patch)
                    conn.execute(
                        "UPDATE booking_documents SET document_json = ?, updated_at = ? WHERE id = ?",
                        (json.dumps(document), datetime.now(timezone.utc).isoformat(), booking_id),
                    )
                    conn.commit()
        except sqlite3.Error as exc:
            logger.exception("Booking update failed: %s", booking_id)
            raise StoreUnavailableError("Booking store is unavailable") from exc

    def _delete_sync(self, booking_id: str) -> None:
        try:
            with self._lock:
                with self._connect() as conn:
                    cursor = conn.execute("DELETE FROM booking_documents WHERE id = ?", (booking_id,))
                    conn.commit()
        except sqlite3.Error as exc:
            logger.exception("Booking delete failed: %s", booking_id)
            raise StoreUnavailableError("Booking store is unavailable") from exc
        if cursor.rowcount == 0:
            raise BookingNotFoundError("Booking not found")

    async def create(self, booking_id: str, record: Dict[str, Any]) -> None:
        await run_blocking(self._create_sync, booking_id, record)

    async def get(self, booking_id: str) -> Dict[str, Any]:
        return await run_blocking(self._get_sync, booking_id)

    async def list_all(self) -> List[StoredRecord]:
        return await run_blocking(self._list_sync)

    async def update(self, booking_id: str, patch: Dict[str, Any]) -> None:
        await run_blocking(self._update_sync, booking_id, patch)

    async def delete(self, booking_id: str) -> None:
        await run_blocking(self._delete_sync, booking_id)

    def _safe_json_object(self, raw_value: Any) -> Dict[str, Any]:
        if raw_value in (None, ""):
            return {}
        try:
            parsed = json.loads(raw_value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
