"""
Shift endpoints: the public "who is free" listing and the tutor's own
availability calendar.
"""

from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.api.deps import get_caller
from tutorbook.core.clock import Clock, get_clock, local_today
from tutorbook.core.exceptions import ValidationError
from tutorbook.db.session import get_db
from tutorbook.schemas.shift import OpenShift, ShiftResponse, ShiftSet, TutorShiftItem
from tutorbook.services import shift_registry
from tutorbook.services.cache_service import (
    get_cached_open_shifts, invalidate_open_shifts, set_cached_open_shifts,
)
from tutorbook.services.identity import CallerIdentity
from tutorbook.services.interfaces.resource_lock import ResourceLock
from tutorbook.services.strategy_factory import get_resource_lock

router = APIRouter(tags=["Shifts"])


@router.get("/shifts/open", response_model=list[OpenShift])
async def list_open_shifts(
    shift_date: date = Query(..., alias="date"),
    time_slot: Optional[str] = Query(None, alias="timeSlot"),
    subject: Optional[str] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """
    Bookable shifts for a date.

    Cache strategy: Check Redis first, fall back to DB on miss.
    Booking, cancellation and availability changes invalidate the date.
    The cached listing is the whole day; started bands are dropped per request.
    """
    now = clock.now()
    cached = await get_cached_open_shifts(shift_date, time_slot, subject)
    if cached is not None:
        return shift_registry.drop_started(cached, now)

    shifts = await shift_registry.list_open_shifts(db, shift_date, time_slot=time_slot, subject=subject)
    await set_cached_open_shifts(shift_date, time_slot, subject, shifts)
    return shift_registry.drop_started(shifts, now)


@router.post("/tutor/shifts", response_model=ShiftResponse)
async def set_shift(
    shift_data: ShiftSet,
    caller: CallerIdentity = Depends(get_caller),
    clock: Clock = Depends(get_clock),
    locks: ResourceLock = Depends(get_resource_lock),
    db: AsyncSession = Depends(get_db),
):
    """Declare the calling tutor available (or not) for one date and band."""
    tutor_id = caller.require_tutor()
    shift = await shift_registry.set_availability(
        db,
        tutor_id,
        shift_data.date,
        shift_data.time_slot,
        shift_data.is_available,
        clock.now(),
        locks,
    )
    await invalidate_open_shifts(shift.date)
    return shift


@router.get("/tutor/shifts", response_model=list[TutorShiftItem])
async def list_my_shifts(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """The calling tutor's shifts in [start, end]; defaults to the next 4 weeks."""
    tutor_id = caller.require_tutor()
    start = start or local_today(clock.now())
    end = end or start + timedelta(days=28)
    if end < start:
        raise ValidationError("end must not be before start")
    return await shift_registry.list_tutor_shifts(db, tutor_id, start, end)
