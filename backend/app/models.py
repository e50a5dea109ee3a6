from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt

ServiceCategory = Literal["plumbing", "cleaning", "repairing", "painting"]
BookingStatus = Literal["Booked", "Completed"]


class ServiceDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    category: ServiceCategory
    name: str
    amount: Decimal
    image: Optional[str] = None


class PriceBreakdown(BaseModel):
    service_amount: Decimal
    gst_amount: Decimal
    total_amount: Decimal


class ServiceQuote(BaseModel):
    service: ServiceDefinition
    service_amount: Decimal
    gst_amount: Decimal
    total_amount: Decimal


class BookingSelection(BaseModel):
    service_id: str
    date: str
    time: str
    note: str = ""
    payment_method: str


class Booking(BaseModel):
    id: str
    service_id: str
    service_name: str
    owner_email: str
    service_amount: Decimal
    gst_amount: Decimal
    total_amount: Decimal
    created_at: datetime
    scheduled_date: str
    scheduled_time: str
    note: str = ""
    status: BookingStatus = "Booked"
    payment_method: str
    image: Optional[str] = None
    review: Optional[str] = None
    rating: Optional[int] = None


class ReviewRequest(BaseModel):
    review: str = ""
    rating: StrictInt


class BookingCancelResult(BaseModel):
    status: Literal["cancelled"] = "cancelled"
    booking_id: str


class TimeSlotList(BaseModel):
    time_slots: list[str] = Field(default_factory=list)


class AuthLoginRequest(BaseModel):
    email: str
    password: str


class AuthLoginResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    email: str
    expires_at: str


class AuthMeResponse(BaseModel):
    email: str
