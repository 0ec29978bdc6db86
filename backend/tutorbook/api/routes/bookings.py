"""
Booking endpoints: reserve a shift for one ticket, list, cancel, and the
lesson report attached to each booking.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.api.deps import get_caller
from tutorbook.api.routes.reports import report_response
from tutorbook.core.clock import Clock, get_clock
from tutorbook.db.session import get_db
from tutorbook.schemas.booking import BookingCreate, BookingResponse, BookingListItem, BookingCancelResponse
from tutorbook.schemas.report import ReportFile, ReportResponse, ReportView
from tutorbook.services import booking_engine, report_lifecycle
from tutorbook.services.booking_queries import list_bookings
from tutorbook.services.cache_service import invalidate_open_shifts
from tutorbook.services.identity import CallerIdentity
from tutorbook.services.interfaces.resource_lock import ResourceLock
from tutorbook.services.strategy_factory import get_resource_lock

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    caller: CallerIdentity = Depends(get_caller),
    clock: Clock = Depends(get_clock),
    locks: ResourceLock = Depends(get_resource_lock),
    db: AsyncSession = Depends(get_db),
):
    """
    Book a tutor's shift for one ticket.

    The shift is re-checked under lock inside a single transaction, so of two
    simultaneous requests for the same shift exactly one succeeds; the other
    gets ShiftNotAvailable.
    """
    request = booking_engine.BookingRequest(
        user_id=caller.user_id,
        student_id=booking_data.student_id,
        tutor_id=booking_data.tutor_id,
        shift_id=booking_data.shift_id,
        date=booking_data.date,
        time_slot=booking_data.time_slot,
        subject=booking_data.subject,
    )
    booking = await booking_engine.create_booking(db, request, caller, clock.now(), locks)
    await invalidate_open_shifts(booking.date)
    return booking


@router.get("/", response_model=list[BookingListItem])
async def list_caller_bookings(
    caller: CallerIdentity = Depends(get_caller),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Bookings visible to the caller's role, newest lesson first."""
    return await list_bookings(db, caller, clock.now())


@router.delete("/{booking_id}", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: int,
    caller: CallerIdentity = Depends(get_caller),
    clock: Clock = Depends(get_clock),
    locks: ResourceLock = Depends(get_resource_lock),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking, refund its ticket and free the shift."""
    booking = await booking_engine.cancel_booking(
        db,
        booking_id,
        caller,
        clock.now(),
        locks,
        bypass_cutoff=booking_engine.can_bypass_cutoff(caller),
    )
    await invalidate_open_shifts(booking.date)
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
    )


@router.get("/{booking_id}/report", response_model=ReportView)
async def get_report(
    booking_id: int,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await report_lifecycle.view_report(db, booking_id, caller)


@router.post("/{booking_id}/report", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def file_report(
    booking_id: int,
    report_data: ReportFile,
    caller: CallerIdentity = Depends(get_caller),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Tutor files the report for a lesson that has taken place."""
    report = await report_lifecycle.file_report(
        db,
        booking_id,
        caller,
        unit=report_data.unit,
        message=report_data.message,
        goal=report_data.goal,
        now=clock.now(),
    )
    return report_response(report)
