"""
Shift registry: tutor availability per date and time band.

A shift is bookable when its row exists, is_available is true and no
confirmed booking references it. The "consumed" half of that is derived from
bookings rather than stored, so it can never drift from the booking table.

mark_consumed() / release() are called by the booking engine only, inside
its transaction and while it holds the shift lock. They bump the shift's
version with a conditional UPDATE that only matches the version the caller
read, so a writer holding a stale copy of the shift affects zero rows and
backs off with ShiftNotAvailable.

Given `now`, open-shift listings leave out bands whose lesson has begun;
create_booking would reject them anyway.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.clock import lesson_start, local_today
from tutorbook.core.config import get_settings
from tutorbook.core.exceptions import (
    DomainError, NotFound, PastDateImmutable, PersistenceFailure,
    ShiftInUse, ShiftNotAvailable, ValidationError,
)
from tutorbook.core.logging import get_logger
from tutorbook.models.booking import Booking, BookingStatus
from tutorbook.models.shift import TutorShift, shift_key
from tutorbook.models.tutor import Tutor
from tutorbook.services.interfaces.resource_lock import ResourceLock

logger = get_logger(__name__)


def validate_time_slot(time_slot: str) -> str:
    time_slot = (time_slot or "").strip()
    if not time_slot:
        raise ValidationError("timeSlot is required")
    if time_slot not in get_settings().TIME_SLOTS:
        raise ValidationError("Invalid time slot", details={"time_slot": time_slot})
    return time_slot


def _active_booking_exists(shift_id_column):
    return exists().where(
        Booking.shift_id == shift_id_column,
        Booking.status == BookingStatus.CONFIRMED.value,
    )


async def get_shift(db: AsyncSession, shift_id: int) -> TutorShift:
    shift = await db.get(TutorShift, shift_id)
    if shift is None:
        raise NotFound(f"Shift {shift_id} not found")
    return shift


async def find_shift(
    db: AsyncSession, tutor_id: int, shift_date: date, time_slot: str, for_update: bool = False
) -> Optional[TutorShift]:
    query = select(TutorShift).where(
        TutorShift.tutor_id == tutor_id,
        TutorShift.date == shift_date,
        TutorShift.time_slot == time_slot,
    )
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(query)).scalar_one_or_none()


async def is_consumed(db: AsyncSession, shift_id: int) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(Booking)
        .where(Booking.shift_id == shift_id, Booking.status == BookingStatus.CONFIRMED.value)
    )
    return result.scalar_one() > 0


async def is_bookable(db: AsyncSession, tutor_id: int, shift_date: date, time_slot: str) -> bool:
    shift = await find_shift(db, tutor_id, shift_date, time_slot)
    if shift is None or not shift.is_available:
        return False
    return not await is_consumed(db, shift.id)


async def set_availability(
    db: AsyncSession,
    tutor_id: int,
    shift_date: date,
    time_slot: str,
    is_available: bool,
    now: datetime,
    locks: ResourceLock,
) -> TutorShift:
    """
    Upsert the tutor's availability for one band.

    Dates before yesterday (local time) are frozen. A shift with a confirmed
    booking cannot be withdrawn; re-declaring it available is a no-op.
    """
    time_slot = validate_time_slot(time_slot)
    if shift_date < local_today(now) - timedelta(days=1):
        raise PastDateImmutable(details={"date": shift_date.isoformat()})

    async with locks.hold(shift_key(tutor_id, shift_date, time_slot)):
        try:
            shift = await find_shift(db, tutor_id, shift_date, time_slot, for_update=True)
            if shift is None:
                shift = TutorShift(
                    tutor_id=tutor_id,
                    date=shift_date,
                    time_slot=time_slot,
                    is_available=is_available,
                )
                db.add(shift)
            else:
                if not is_available and await is_consumed(db, shift.id):
                    raise ShiftInUse(details={"shift_id": shift.id})
                shift.is_available = is_available
            await db.flush()
            await db.commit()
        except DomainError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("shift_update_failed", tutor_id=tutor_id, date=str(shift_date), error=str(e))
            raise PersistenceFailure()

    logger.info(
        "shift_updated",
        shift_id=shift.id,
        tutor_id=tutor_id,
        date=str(shift_date),
        time_slot=time_slot,
        is_available=is_available,
    )
    return shift


async def lock_shift(db: AsyncSession, shift_id: int) -> TutorShift:
    """Re-read the shift under a row lock (engine use only)."""
    result = await db.execute(
        select(TutorShift)
        .where(TutorShift.id == shift_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    shift = result.scalar_one_or_none()
    if shift is None:
        raise NotFound(f"Shift {shift_id} not found")
    return shift


async def mark_consumed(db: AsyncSession, shift: TutorShift) -> None:
    """Engine use only: claim the shift for the booking being inserted."""
    result = await db.execute(
        update(TutorShift)
        .where(
            TutorShift.id == shift.id,
            TutorShift.version == shift.version,
            TutorShift.is_available.is_(True),
        )
        .values(version=TutorShift.version + 1)
    )
    if result.rowcount == 0:
        logger.info("shift_consume_conflict", shift_id=shift.id, version=shift.version)
        raise ShiftNotAvailable(details={"shift_id": shift.id})


async def release(db: AsyncSession, shift_id: int) -> None:
    """Engine use only: the referencing booking was cancelled."""
    await db.execute(
        update(TutorShift)
        .where(TutorShift.id == shift_id)
        .values(version=TutorShift.version + 1)
    )
    logger.info("shift_released", shift_id=shift_id)


def drop_started(listing: list[dict], now: datetime) -> list[dict]:
    """Remove bands whose lesson has begun. Cached listings carry ISO date strings."""
    kept = []
    for item in listing:
        shift_date = item["date"]
        if isinstance(shift_date, str):
            shift_date = date.fromisoformat(shift_date)
        if lesson_start(shift_date, item["time_slot"]) > now:
            kept.append(item)
    return kept


async def list_open_shifts(
    db: AsyncSession,
    shift_date: date,
    time_slot: Optional[str] = None,
    subject: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[dict]:
    """
    Bookable shifts on a date, with tutor names, optionally by band and subject.
    With `now`, bands that have already started are left out.
    """
    query = (
        select(TutorShift, Tutor)
        .join(Tutor, Tutor.id == TutorShift.tutor_id)
        .where(
            TutorShift.date == shift_date,
            TutorShift.is_available.is_(True),
            Tutor.is_active.is_(True),
            ~_active_booking_exists(TutorShift.id),
        )
        .order_by(TutorShift.time_slot.asc(), Tutor.last_name.asc(), TutorShift.id.asc())
    )
    if time_slot:
        query = query.where(TutorShift.time_slot == validate_time_slot(time_slot))
    if subject:
        query = query.where(Tutor.specialization.ilike(f"%{subject.strip()}%"))

    rows = (await db.execute(query)).all()
    listing = [
        {
            "shift_id": shift.id,
            "tutor_id": tutor.id,
            "tutor_name": tutor.display_name,
            "specialization": tutor.specialization,
            "date": shift.date,
            "time_slot": shift.time_slot,
        }
        for shift, tutor in rows
    ]
    return listing if now is None else drop_started(listing, now)


async def list_tutor_shifts(
    db: AsyncSession, tutor_id: int, start: date, end: date
) -> list[dict]:
    booked = _active_booking_exists(TutorShift.id).label("booked")
    rows = (
        await db.execute(
            select(TutorShift, booked)
            .where(
                and_(
                    TutorShift.tutor_id == tutor_id,
                    TutorShift.date >= start,
                    TutorShift.date <= end,
                )
            )
            .order_by(TutorShift.date.asc(), TutorShift.time_slot.asc())
        )
    ).all()
    return [
        {
            "id": shift.id,
            "tutor_id": shift.tutor_id,
            "date": shift.date,
            "time_slot": shift.time_slot,
            "is_available": shift.is_available,
            "booked": bool(is_booked),
        }
        for shift, is_booked in rows
    ]
