from fastapi import APIRouter

from app.models import ServiceDefinition, ServiceQuote, TimeSlotList
from app.routers.http_errors import raise_booking_http_error
from app.services.booking_lifecycle import TIME_SLOTS, booking_lifecycle
from app.services.errors import BookingError

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/time-slots", response_model=TimeSlotList)
def time_slots():
    return TimeSlotList(time_slots=list(TIME_SLOTS))


@router.get("/categories/{category}", response_model=list[ServiceDefinition])
async def list_category(category: str):
    try:
        return await booking_lifecycle.catalog.list_category(category)
    except BookingError as exc:
        raise_booking_http_error(exc)


@router.get("/services/{service_id}", response_model=ServiceDefinition)
async def service_details(service_id: str):
    try:
        return await booking_lifecycle.catalog.resolve(service_id)
    except BookingError as exc:
        raise_booking_http_error(exc)


@router.get("/services/{service_id}/quote", response_model=ServiceQuote)
async def service_quote(service_id: str):
    try:
        return await booking_lifecycle.quote(service_id)
    except BookingError as exc:
        raise_booking_http_error(exc)
