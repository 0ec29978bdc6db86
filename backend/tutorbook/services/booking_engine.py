"""
Booking engine: the only code that moves tickets and shifts together.

CONCURRENCY STRATEGY: Serialize per shift, guard in the database
================================================================

Problem:
  Two parents press "book" on the same 16:00 shift at the same moment.
  Both see it open, both pay a ticket, both get a booking. Or one student
  books two different shifts with their last ticket and ends up at -1.

Solution:
  create() and cancel() each run as ONE database transaction that the engine
  commits itself, wrapped in a ResourceLock over the shift key and the
  ticket holder key (acquired in sorted order, so no deadlocks):

  1. Re-read the shift with SELECT ... FOR UPDATE
  2. Check it is available and not referenced by a confirmed booking
  3. Check the holder's ticket balance
  4. INSERT the booking, debit one ticket (ledger locks the holder row),
     bump the shift version WHERE version = :seen
  5. COMMIT; any failure rolls back all of it

  The partial unique index bookings(shift_id) WHERE status='confirmed' is
  the final safety net: if everything above were bypassed, the second
  insert fails with an IntegrityError, reported as ShiftNotAvailable.

Cancellation:
  A conditional UPDATE ... WHERE status='confirmed' flips the status, so a
  second cancel affects zero rows and fails with AlreadyTerminal instead of
  refunding twice.

Time:
  Nothing here reads the clock. Callers pass `now`, which is how the 24h
  cutoff and "lesson already started" rules are tested with fixed clocks.
"""

import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.clock import cancel_cutoff, is_past_lesson_date, lesson_start
from tutorbook.core.config import get_settings
from tutorbook.core.exceptions import (
    AlreadyTerminal, DomainError, InsufficientBalance, NotFound, PastCancelDeadline,
    PermissionDenied, PersistenceFailure, ShiftNotAvailable, ValidationError,
)
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import booking_latency, record_booking_attempt, record_cancellation
from tutorbook.models.booking import Booking, BookingStatus, ReportStatus
from tutorbook.models.shift import shift_key
from tutorbook.models.user import Role
from tutorbook.services import shift_registry, ticket_ledger
from tutorbook.services.identity import CallerIdentity
from tutorbook.services.interfaces.resource_lock import ResourceLock
from tutorbook.services.ticket_ledger import TicketHolder

logger = get_logger(__name__)

_REJECTION_METRIC = {
    ShiftNotAvailable: "shift_unavailable",
    InsufficientBalance: "insufficient_balance",
    ValidationError: "invalid",
}

_CANCEL_METRIC = {
    PastCancelDeadline: "past_deadline",
    AlreadyTerminal: "already_terminal",
}


@dataclass(frozen=True)
class BookingRequest:
    user_id: int
    tutor_id: int
    shift_id: int
    date: date
    time_slot: str
    subject: str
    student_id: Optional[int] = None


def payer_of(booking: Booking) -> TicketHolder:
    """Tickets come from the attending student, else from the booking account."""
    if booking.student_id is not None:
        return TicketHolder.student(booking.student_id)
    return TicketHolder.user(booking.user_id)


def effective_status(booking: Booking, now: datetime) -> str:
    """Confirmed bookings read as completed once their date is behind us."""
    if booking.status == BookingStatus.CONFIRMED.value and is_past_lesson_date(booking.date, now):
        return BookingStatus.COMPLETED.value
    return booking.status


def can_bypass_cutoff(caller: CallerIdentity) -> bool:
    return caller.role.value in get_settings().CANCEL_BYPASS_ROLES


def _validate(request: BookingRequest) -> tuple[str, str]:
    missing = [
        name
        for name in ("user_id", "tutor_id", "shift_id", "date")
        if getattr(request, name) is None
    ]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})
    subject = (request.subject or "").strip()
    if not subject:
        raise ValidationError("subject is required")
    time_slot = shift_registry.validate_time_slot(request.time_slot)
    return subject, time_slot


def _resolve_student(request: BookingRequest, caller: CallerIdentity) -> Optional[int]:
    student_id = request.student_id
    if student_id is None and caller.role is Role.STUDENT:
        student_id = caller.student_id
    if student_id is not None and not caller.can_act_for_student(student_id):
        raise NotFound("Student not found", details={"student_id": student_id})
    return student_id


async def create_booking(
    db: AsyncSession,
    request: BookingRequest,
    caller: CallerIdentity,
    now: datetime,
    locks: ResourceLock,
) -> Booking:
    """
    Reserve a shift for one ticket.

    Raises ValidationError, NotFound, ShiftNotAvailable or InsufficientBalance;
    on any of them nothing has been written.
    """
    start = time.perf_counter()
    try:
        if caller.role is Role.TUTOR:
            raise PermissionDenied("Tutors cannot book lessons")
        subject, time_slot = _validate(request)
        student_id = _resolve_student(request, caller)

        shift = await shift_registry.get_shift(db, request.shift_id)
        if (shift.tutor_id, shift.date, shift.time_slot) != (request.tutor_id, request.date, time_slot):
            raise ValidationError(
                "Shift does not match tutor, date and time slot",
                details={"shift_id": shift.id},
            )
    except DomainError as e:
        record_booking_attempt(_REJECTION_METRIC.get(type(e), "invalid"))
        raise

    holder = TicketHolder.student(student_id) if student_id is not None else TicketHolder.user(request.user_id)

    async with locks.hold(shift.resource_key, holder.resource_key):
        try:
            shift = await shift_registry.lock_shift(db, shift.id)
            if not shift.is_available or await shift_registry.is_consumed(db, shift.id):
                raise ShiftNotAvailable(details={"shift_id": shift.id})
            if lesson_start(shift.date, shift.time_slot) <= now:
                raise ShiftNotAvailable("This lesson has already started", details={"shift_id": shift.id})
            if await ticket_ledger.balance(db, holder) < 1:
                raise InsufficientBalance()

            booking = Booking(
                user_id=request.user_id,
                student_id=student_id,
                tutor_id=shift.tutor_id,
                shift_id=shift.id,
                date=shift.date,
                time_slot=shift.time_slot,
                subject=subject,
                status=BookingStatus.CONFIRMED.value,
                report_status=ReportStatus.PENDING.value,
            )
            db.add(booking)
            await db.flush()

            await ticket_ledger.debit(
                db, holder, 1, ticket_ledger.BOOKING_DEBIT_NOTE, booking_id=booking.id
            )
            await shift_registry.mark_consumed(db, shift)
            await db.commit()
        except DomainError as e:
            await db.rollback()
            record_booking_attempt(_REJECTION_METRIC.get(type(e), "invalid"))
            logger.info(
                "booking_rejected",
                reason=e.code,
                shift_id=request.shift_id,
                user_id=request.user_id,
                student_id=student_id,
            )
            raise
        except IntegrityError:
            # Lost the race on uq_bookings_active_shift
            await db.rollback()
            record_booking_attempt("shift_unavailable")
            logger.info("booking_rejected", reason="active_shift_conflict", shift_id=request.shift_id)
            raise ShiftNotAvailable(details={"shift_id": request.shift_id})
        except SQLAlchemyError as e:
            await db.rollback()
            record_booking_attempt("error")
            logger.error("booking_failed", shift_id=request.shift_id, error=str(e))
            raise PersistenceFailure()

    await db.refresh(booking)
    booking_latency.observe(time.perf_counter() - start)
    record_booking_attempt("success")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        user_id=booking.user_id,
        student_id=booking.student_id,
        tutor_id=booking.tutor_id,
        shift_id=booking.shift_id,
        date=str(booking.date),
        time_slot=booking.time_slot,
    )
    return booking


def _involved(caller: CallerIdentity, booking: Booking) -> bool:
    if caller.is_admin or caller.user_id == booking.user_id:
        return True
    if caller.tutor_id is not None and caller.tutor_id == booking.tutor_id:
        return True
    return booking.student_id is not None and booking.student_id in caller.student_ids


async def get_booking_for(db: AsyncSession, booking_id: int, caller: CallerIdentity) -> Booking:
    """Load a booking the caller is party to; anyone else gets NotFound."""
    booking = await db.get(Booking, booking_id)
    if booking is None or not _involved(caller, booking):
        raise NotFound("Booking not found")
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    caller: CallerIdentity,
    now: datetime,
    locks: ResourceLock,
    bypass_cutoff: bool = False,
) -> Booking:
    """
    Cancel a confirmed booking: refund one ticket and free the shift.

    Allowed until lesson start minus CANCEL_CUTOFF_HOURS, measured from the
    lesson's own start time on its date. bypass_cutoff is only honored for
    roles listed in CANCEL_BYPASS_ROLES.
    """
    if bypass_cutoff and not can_bypass_cutoff(caller):
        raise PermissionDenied("Not allowed to cancel past the deadline")

    try:
        booking = await get_booking_for(db, booking_id, caller)
    except NotFound:
        record_cancellation("not_found")
        raise
    holder = payer_of(booking)
    key = shift_key(booking.tutor_id, booking.date, booking.time_slot)

    async with locks.hold(key, holder.resource_key):
        try:
            booking = (
                await db.execute(
                    select(Booking)
                    .where(Booking.id == booking_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()

            if effective_status(booking, now) != BookingStatus.CONFIRMED.value:
                raise AlreadyTerminal(details={"status": effective_status(booking, now)})

            cutoff = cancel_cutoff(booking.date, booking.time_slot)
            if not bypass_cutoff and now >= cutoff:
                raise PastCancelDeadline(details={"cutoff": cutoff.isoformat()})

            result = await db.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.status == BookingStatus.CONFIRMED.value)
                .values(status=BookingStatus.CANCELLED.value)
            )
            if result.rowcount == 0:
                raise AlreadyTerminal()

            await ticket_ledger.credit(
                db, holder, 1, ticket_ledger.CANCEL_REFUND_NOTE, booking_id=booking.id
            )
            await shift_registry.release(db, booking.shift_id)
            await db.commit()
        except DomainError as e:
            await db.rollback()
            record_cancellation(_CANCEL_METRIC.get(type(e), "rejected"))
            logger.info("cancellation_rejected", booking_id=booking_id, reason=e.code)
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            record_cancellation("error")
            logger.error("cancellation_failed", booking_id=booking_id, error=str(e))
            raise PersistenceFailure()

    await db.refresh(booking)
    record_cancellation("cancelled")
    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        shift_id=booking.shift_id,
        bypass_cutoff=bypass_cutoff,
        refunded_to=holder.resource_key,
    )
    return booking
