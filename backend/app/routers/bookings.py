from typing import Optional

from fastapi import APIRouter, Depends

from app.auth import current_owner_email, require_admin
from app.models import Booking, BookingCancelResult, BookingSelection, ReviewRequest
from app.routers.http_errors import raise_booking_http_error
from app.services.booking_lifecycle import booking_lifecycle
from app.services.errors import BookingError

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=Booking)
async def create_booking(selection: BookingSelection, owner: Optional[str] = Depends(current_owner_email)):
    try:
        return await booking_lifecycle.create_booking(owner, selection)
    except BookingError as exc:
        raise_booking_http_error(exc)


@router.get("", response_model=list[Booking])
async def list_bookings(owner: Optional[str] = Depends(current_owner_email)):
    try:
        return await booking_lifecycle.list_bookings(owner)
    except BookingError as exc:
        raise_booking_http_error(exc)


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(booking_id: str, owner: Optional[str] = Depends(current_owner_email)):
    try:
        return await booking_lifecycle.get_booking(owner, booking_id)
    except BookingError as exc:
        raise_booking_http_error(exc)


@router.delete("/{booking_id}", response_model=BookingCancelResult)
async def cancel_booking(booking_id: str, owner: Optional[str] = Depends(current_owner_email)):
    try:
        await booking_lifecycle.cancel_booking(owner, booking_id)
    except BookingError as exc:
        raise_booking_http_error(exc)
    return BookingCancelResult(booking_id=booking_id)


@router.post("/{booking_id}/review", response_model=Booking)
async def submit_review(
    booking_id: str,
    request: ReviewRequest,
    owner: Optional[str] = Depends(current_owner_email),
):
    try:
        return await booking_lifecycle.submit_review(owner, booking_id, request.review, request.rating)
    except BookingError as exc:
        raise_booking_http_error(exc)


@router.post("/{booking_id}/complete", response_model=Booking)
async def mark_completed(booking_id: str, _operator: str = Depends(require_admin)):
    try:
        return await booking_lifecycle.mark_completed(booking_id)
    except BookingError as exc:
        raise_booking_http_error(exc)
