"""
Pydantic schemas for tutor availability.
"""

from datetime import date
from typing import Optional

from tutorbook.schemas.base import CamelModel


class ShiftSet(CamelModel):
    date: date
    time_slot: str
    is_available: bool


class ShiftResponse(CamelModel):
    id: int
    tutor_id: int
    date: date
    time_slot: str
    is_available: bool


class TutorShiftItem(ShiftResponse):
    booked: bool


class OpenShift(CamelModel):
    shift_id: int
    tutor_id: int
    tutor_name: str
    specialization: Optional[str] = None
    date: date
    time_slot: str
