"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import date, datetime
from typing import Optional
from pydantic import Field

from tutorbook.schemas.base import CamelModel


class BookingCreate(CamelModel):
    student_id: Optional[int] = None
    tutor_id: int
    shift_id: int
    date: date
    time_slot: str = Field(..., max_length=20)
    subject: str = Field(..., max_length=100)


class BookingResponse(CamelModel):
    id: int
    user_id: int
    student_id: Optional[int]
    tutor_id: int
    shift_id: int
    date: date
    time_slot: str
    subject: str
    status: str
    report_status: str
    created_at: datetime


class BookingListItem(BookingResponse):
    tutor_name: Optional[str] = None
    student_name: Optional[str] = None


class BookingCancelResponse(CamelModel):
    message: str
    booking_id: int
    status: str
