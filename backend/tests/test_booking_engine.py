"""
Tests for the booking engine: atomic create, cancellation with the 24h
cutoff, and behaviour under concurrent requests.
"""

import asyncio
from datetime import date, datetime, timedelta

import pytest
import pytz
from sqlalchemy import func, select

from tutorbook.core.exceptions import (
    AlreadyTerminal, InsufficientBalance, NotFound, PastCancelDeadline,
    PermissionDenied, ShiftNotAvailable, ValidationError,
)
from tutorbook.models import Booking, TutorShift
from tutorbook.services import booking_engine, shift_registry, ticket_ledger
from tutorbook.services.booking_engine import BookingRequest
from tutorbook.services.ticket_ledger import TicketHolder
from conftest import FIRST_SLOT, NOW, TOMORROW, caller_for, grant_tickets

TOKYO = pytz.timezone("Asia/Tokyo")


def tokyo(*args) -> datetime:
    return TOKYO.localize(datetime(*args))


def request_for(shift: TutorShift, user_id: int, student_id=None, **overrides) -> BookingRequest:
    fields = dict(
        user_id=user_id,
        student_id=student_id,
        tutor_id=shift.tutor_id,
        shift_id=shift.id,
        date=shift.date,
        time_slot=shift.time_slot,
        subject="Math",
    )
    fields.update(overrides)
    return BookingRequest(**fields)


async def _confirmed_count(db, shift_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Booking).where(Booking.shift_id == shift_id, Booking.status == "confirmed")
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_book_with_one_ticket(db_session, parent, student, shift, locks):
    """One ticket buys the shift; the shift is then gone."""
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)

    booking = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), caller, NOW, locks
    )

    assert booking.status == "confirmed"
    assert booking.report_status == "pending"
    assert await ticket_ledger.balance(db_session, TicketHolder.student(student.id)) == 0
    assert not await shift_registry.is_bookable(db_session, shift.tutor_id, shift.date, shift.time_slot)

    debit = (await ticket_ledger.history(db_session, TicketHolder.student(student.id)))[0]
    assert debit.quantity == -1
    assert debit.booking_id == booking.id
    assert debit.description == ticket_ledger.BOOKING_DEBIT_NOTE


@pytest.mark.asyncio
async def test_book_without_tickets(db_session, parent, student, shift, locks):
    caller = await caller_for(db_session, parent)
    request = request_for(shift, parent.id, student.id)
    # a rejected booking rolls back, which expires every instance in the session
    holder = TicketHolder.student(student.id)

    with pytest.raises(InsufficientBalance):
        await booking_engine.create_booking(db_session, request, caller, NOW, locks)

    assert await _confirmed_count(db_session, request.shift_id) == 0
    assert await shift_registry.is_bookable(db_session, request.tutor_id, request.date, request.time_slot)
    assert await ticket_ledger.balance(db_session, holder) == 0


@pytest.mark.asyncio
async def test_account_tickets_pay_when_no_student_given(db_session, parent, shift, locks):
    await grant_tickets(db_session, 2, user_id=parent.id)
    caller = await caller_for(db_session, parent)

    booking = await booking_engine.create_booking(db_session, request_for(shift, parent.id), caller, NOW, locks)

    assert booking.student_id is None
    assert booking_engine.payer_of(booking) == TicketHolder.user(parent.id)
    assert await ticket_ledger.balance(db_session, TicketHolder.user(parent.id)) == 1


@pytest.mark.asyncio
async def test_student_login_books_for_itself(db_session, student_user, student, shift, locks):
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, student_user)

    booking = await booking_engine.create_booking(db_session, request_for(shift, student_user.id), caller, NOW, locks)

    assert booking.student_id == student.id


@pytest.mark.asyncio
async def test_cannot_book_for_someone_elses_student(db_session, parent, other_student, shift, locks):
    await grant_tickets(db_session, 1, student_id=other_student.id)
    caller = await caller_for(db_session, parent)

    with pytest.raises(NotFound):
        await booking_engine.create_booking(
            db_session, request_for(shift, parent.id, other_student.id), caller, NOW, locks
        )


@pytest.mark.asyncio
async def test_tutors_cannot_book(db_session, tutor_user, tutor, shift, locks):
    caller = await caller_for(db_session, tutor_user)
    with pytest.raises(PermissionDenied):
        await booking_engine.create_booking(db_session, request_for(shift, tutor_user.id), caller, NOW, locks)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"subject": "   "},
        {"time_slot": ""},
        {"time_slot": "09:00-10:30"},
        {"time_slot": "18:00-19:30"},
        {"date": TOMORROW + timedelta(days=1)},
    ],
)
async def test_invalid_requests_write_nothing(db_session, parent, student, shift, locks, overrides):
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)

    with pytest.raises(ValidationError):
        await booking_engine.create_booking(
            db_session, request_for(shift, parent.id, student.id, **overrides), caller, NOW, locks
        )

    assert await ticket_ledger.balance(db_session, TicketHolder.student(student.id)) == 1


@pytest.mark.asyncio
async def test_unavailable_shift(db_session, parent, student, shift, locks):
    shift.is_available = False
    await db_session.commit()
    holder = TicketHolder.student(student.id)
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)

    with pytest.raises(ShiftNotAvailable):
        await booking_engine.create_booking(
            db_session, request_for(shift, parent.id, student.id), caller, NOW, locks
        )
    assert await ticket_ledger.balance(db_session, holder) == 1


@pytest.mark.asyncio
async def test_started_lesson_cannot_be_booked(db_session, parent, student, shift, locks):
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)
    lesson_begins = tokyo(2026, 11, 3, 16, 0)

    with pytest.raises(ShiftNotAvailable):
        await booking_engine.create_booking(
            db_session, request_for(shift, parent.id, student.id), caller, lesson_begins, locks
        )


@pytest.mark.asyncio
async def test_second_booking_of_same_shift(db_session, parent, student, other_parent, other_student, shift, locks):
    await grant_tickets(db_session, 1, student_id=student.id)
    await grant_tickets(db_session, 1, student_id=other_student.id)

    first = await caller_for(db_session, parent)
    await booking_engine.create_booking(db_session, request_for(shift, parent.id, student.id), first, NOW, locks)

    second = await caller_for(db_session, other_parent)
    loser = TicketHolder.student(other_student.id)
    with pytest.raises(ShiftNotAvailable):
        await booking_engine.create_booking(
            db_session, request_for(shift, other_parent.id, other_student.id), second, NOW, locks
        )
    assert await ticket_ledger.balance(db_session, loser) == 1


@pytest.mark.asyncio
async def test_simultaneous_bookings_for_one_shift(
    session_factory, parent, student, other_parent, other_student, shift, locks
):
    """Two parents press "book" at the same moment: one booking, one ShiftNotAvailable."""
    async with session_factory() as seed:
        await grant_tickets(seed, 1, student_id=student.id)
        await grant_tickets(seed, 1, student_id=other_student.id)

    async def attempt(user, student_id):
        async with session_factory() as session:
            caller = await caller_for(session, user)
            try:
                await booking_engine.create_booking(
                    session, request_for(shift, user.id, student_id), caller, NOW, locks
                )
                return "booked"
            except ShiftNotAvailable:
                return "unavailable"

    results = await asyncio.gather(attempt(parent, student.id), attempt(other_parent, other_student.id))

    assert sorted(results) == ["booked", "unavailable"]
    async with session_factory() as check:
        assert await _confirmed_count(check, shift.id) == 1
        remaining = [
            await ticket_ledger.balance(check, TicketHolder.student(student.id)),
            await ticket_ledger.balance(check, TicketHolder.student(other_student.id)),
        ]
        assert sorted(remaining) == [0, 1]


@pytest.mark.asyncio
async def test_last_ticket_spent_once_across_shifts(session_factory, parent, student, shift, second_shift, locks):
    async with session_factory() as seed:
        await grant_tickets(seed, 1, student_id=student.id)

    async def attempt(target):
        async with session_factory() as session:
            caller = await caller_for(session, parent)
            try:
                await booking_engine.create_booking(
                    session, request_for(target, parent.id, student.id), caller, NOW, locks
                )
                return "booked"
            except InsufficientBalance:
                return "no_tickets"

    results = await asyncio.gather(attempt(shift), attempt(second_shift))

    assert sorted(results) == ["booked", "no_tickets"]
    async with session_factory() as check:
        assert await ticket_ledger.balance(check, TicketHolder.student(student.id)) == 0


@pytest.mark.asyncio
async def test_cancel_refunds_and_releases(db_session, parent, student, shift, locks):
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)
    booking = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), caller, NOW, locks
    )

    cancelled = await booking_engine.cancel_booking(db_session, booking.id, caller, NOW, locks)

    assert cancelled.status == "cancelled"
    assert await ticket_ledger.balance(db_session, TicketHolder.student(student.id)) == 1
    assert await shift_registry.is_bookable(db_session, shift.tutor_id, shift.date, shift.time_slot)
    refund = (await ticket_ledger.history(db_session, TicketHolder.student(student.id)))[0]
    assert refund.description == ticket_ledger.CANCEL_REFUND_NOTE


@pytest.mark.asyncio
async def test_cancel_twice_refunds_once(db_session, parent, student, shift, locks):
    holder = TicketHolder.student(student.id)
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)
    booking = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), caller, NOW, locks
    )

    await booking_engine.cancel_booking(db_session, booking.id, caller, NOW, locks)
    with pytest.raises(AlreadyTerminal):
        await booking_engine.cancel_booking(db_session, booking.id, caller, NOW, locks)

    assert await ticket_ledger.balance(db_session, holder) == 1


@pytest.mark.asyncio
async def test_cancelled_shift_can_be_booked_again(db_session, parent, student, shift, locks):
    await grant_tickets(db_session, 2, student_id=student.id)
    caller = await caller_for(db_session, parent)
    first = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), caller, NOW, locks
    )
    await booking_engine.cancel_booking(db_session, first.id, caller, NOW, locks)

    second = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), caller, NOW, locks
    )
    assert second.id != first.id
    assert await _confirmed_count(db_session, shift.id) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "cancel_at, accepted",
    [
        (tokyo(2025, 1, 9, 15, 59), True),
        (tokyo(2025, 1, 9, 15, 59, 59), True),
        (tokyo(2025, 1, 9, 16, 0), False),
        (tokyo(2025, 1, 9, 16, 1), False),
    ],
)
async def test_cancel_cutoff_is_lesson_start_minus_24h(
    db_session, parent, student, tutor, locks, cancel_at, accepted
):
    holder = TicketHolder.student(student.id)
    lesson = TutorShift(tutor_id=tutor.id, date=date(2025, 1, 10), time_slot=FIRST_SLOT)
    db_session.add(lesson)
    await db_session.commit()
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)
    booked_at = tokyo(2025, 1, 5, 12, 0)
    booking = await booking_engine.create_booking(
        db_session, request_for(lesson, parent.id, student.id), caller, booked_at, locks
    )

    if accepted:
        await booking_engine.cancel_booking(db_session, booking.id, caller, cancel_at, locks)
        assert await ticket_ledger.balance(db_session, holder) == 1
        assert await shift_registry.is_bookable(db_session, lesson.tutor_id, lesson.date, FIRST_SLOT)
    else:
        with pytest.raises(PastCancelDeadline):
            await booking_engine.cancel_booking(db_session, booking.id, caller, cancel_at, locks)
        await db_session.refresh(booking)
        assert booking.status == "confirmed"
        assert await ticket_ledger.balance(db_session, holder) == 0


@pytest.mark.asyncio
async def test_admin_cancels_past_cutoff(db_session, parent, student, admin, shift, locks):
    await grant_tickets(db_session, 1, student_id=student.id)
    booking = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), await caller_for(db_session, parent), NOW, locks
    )
    late = tokyo(2026, 11, 3, 15, 0)

    admin_caller = await caller_for(db_session, admin)
    cancelled = await booking_engine.cancel_booking(
        db_session, booking.id, admin_caller, late, locks, bypass_cutoff=True
    )

    assert cancelled.status == "cancelled"
    assert await ticket_ledger.balance(db_session, TicketHolder.student(student.id)) == 1


@pytest.mark.asyncio
async def test_bypass_refused_for_parents(db_session, parent, student, shift, locks):
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)
    booking = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), caller, NOW, locks
    )

    with pytest.raises(PermissionDenied):
        await booking_engine.cancel_booking(db_session, booking.id, caller, NOW, locks, bypass_cutoff=True)


@pytest.mark.asyncio
async def test_strangers_cannot_see_or_cancel(db_session, parent, student, other_parent, shift, locks):
    await grant_tickets(db_session, 1, student_id=student.id)
    booking = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), await caller_for(db_session, parent), NOW, locks
    )

    stranger = await caller_for(db_session, other_parent)
    with pytest.raises(NotFound):
        await booking_engine.cancel_booking(db_session, booking.id, stranger, NOW, locks)


@pytest.mark.asyncio
async def test_past_lessons_read_as_completed(db_session, parent, student, shift, locks):
    await grant_tickets(db_session, 1, student_id=student.id)
    caller = await caller_for(db_session, parent)
    booking = await booking_engine.create_booking(
        db_session, request_for(shift, parent.id, student.id), caller, NOW, locks
    )
    day_after = tokyo(2026, 11, 4, 9, 0)

    assert booking_engine.effective_status(booking, NOW) == "confirmed"
    assert booking_engine.effective_status(booking, day_after) == "completed"
    with pytest.raises(AlreadyTerminal):
        await booking_engine.cancel_booking(db_session, booking.id, caller, day_after, locks, bypass_cutoff=False)
