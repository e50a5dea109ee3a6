import re
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Optional

ID_SEPARATOR = "_"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def epoch_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def format_booking_id(owner_email: str, service_id: str, millis: int) -> str:
    return ID_SEPARATOR.join((owner_email, service_id, str(millis)))


def booking_id_matches(booking_id: str, owner_email: str, service_id: str) -> bool:
    """Check that an id was minted for exactly this owner and service.

    Splitting on the separator is ambiguous because emails may contain
    underscores, so the id is matched against the known owner and service.
    """
    prefix = f"{owner_email}{ID_SEPARATOR}{service_id}{ID_SEPARATOR}"
    if not booking_id.startswith(prefix):
        return False
    return re.fullmatch(r"\d+", booking_id[len(prefix):]) is not None


class BookingIdentity:
    """Mints ``<ownerEmail>_<serviceId>_<epochMillis>`` ids.

    Two mints in the same millisecond never reuse a timestamp within one
    process: the millisecond component is bumped past the last one issued.
    Cross-process collisions still surface as a store conflict.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._last_millis: Optional[int] = None

    def mint(self, owner_email: str, service_id: str, clock: Clock = utc_now) -> str:
        millis = epoch_millis(clock())
        with self._lock:
            if self._last_millis is not None and millis <= self._last_millis:
                millis = self._last_millis + 1
            self._last_millis = millis
        return format_booking_id(owner_email, service_id, millis)
