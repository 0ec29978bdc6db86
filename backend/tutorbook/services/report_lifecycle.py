"""
Lesson report lifecycle.

    pending --file()--> completed      (edit() keeps it completed)

A report belongs to exactly one booking and may only be written by that
booking's tutor, for a confirmed lesson whose date is already behind us.
Alongside the structured row we keep the composite text on the booking so
screens that only read bookings.report_content keep working.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.clock import is_past_lesson_date
from tutorbook.core.exceptions import (
    AlreadyTerminal, LessonNotFinished, NotFound, PersistenceFailure, ValidationError,
)
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import record_report_operation
from tutorbook.models.booking import Booking, BookingStatus, ReportStatus
from tutorbook.models.report import LessonReport
from tutorbook.services import report_format
from tutorbook.services.booking_engine import get_booking_for
from tutorbook.services.identity import CallerIdentity
from tutorbook.services.report_format import ReportSections

logger = get_logger(__name__)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _ensure_reportable(booking: Booking, now: datetime) -> None:
    if booking.status == BookingStatus.CANCELLED.value:
        raise AlreadyTerminal("Cancelled lessons cannot be reported")
    if not is_past_lesson_date(booking.date, now):
        raise LessonNotFinished(details={"date": booking.date.isoformat()})


async def _tutor_booking(
    db: AsyncSession, booking_id: int, caller: CallerIdentity, for_update: bool = False
) -> Booking:
    tutor_id = caller.require_tutor()
    if for_update:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
    else:
        booking = await db.get(Booking, booking_id)
    if booking is None or booking.tutor_id != tutor_id:
        raise NotFound("Booking not found")
    return booking


async def _report_for_booking(db: AsyncSession, booking_id: int) -> Optional[LessonReport]:
    result = await db.execute(select(LessonReport).where(LessonReport.booking_id == booking_id))
    return result.scalar_one_or_none()


def _sections_of(report: LessonReport) -> ReportSections:
    return ReportSections(
        unit=report.unit_content or "",
        message=report.message_content or "",
        goal=report.goal_content or "",
    )


async def _write_report(db: AsyncSession, booking: Booking, sections: ReportSections) -> LessonReport:
    report = await _report_for_booking(db, booking.id)
    if report is None:
        report = LessonReport(booking_id=booking.id, tutor_id=booking.tutor_id, student_id=booking.student_id)
        db.add(report)
    report.unit_content = sections.unit
    report.message_content = sections.message
    report.goal_content = sections.goal

    booking.report_status = ReportStatus.COMPLETED.value
    booking.report_content = report_format.compose(sections)
    await db.flush()
    return report


async def _commit(db: AsyncSession, event: str, **fields) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"{event}_failed", error=str(e), **fields)
        raise PersistenceFailure()


async def file_report(
    db: AsyncSession,
    booking_id: int,
    caller: CallerIdentity,
    unit: Optional[str],
    message: Optional[str],
    goal: Optional[str],
    now: datetime,
) -> LessonReport:
    """
    Write the report for a past lesson and mark the booking's report completed.
    Filing again overwrites the earlier text.
    """
    booking = await _tutor_booking(db, booking_id, caller, for_update=True)
    _ensure_reportable(booking, now)

    sections = ReportSections(unit=_clean(unit), message=_clean(message), goal=_clean(goal))
    if sections.is_empty():
        raise ValidationError("At least one report section must be filled in")

    try:
        try:
            report = await _write_report(db, booking, sections)
        except IntegrityError:
            # Lost the insert race for this booking's report; the row exists now
            await db.rollback()
            logger.info("report_file_retry", booking_id=booking_id)
            booking = await _tutor_booking(db, booking_id, caller, for_update=True)
            report = await _write_report(db, booking, sections)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("report_file_failed", booking_id=booking_id, error=str(e))
        raise PersistenceFailure()
    await _commit(db, "report_file", booking_id=booking_id)
    await db.refresh(report)

    record_report_operation("filed")
    logger.info("report_filed", booking_id=booking.id, report_id=report.id, tutor_id=booking.tutor_id)
    return report


async def edit_report(
    db: AsyncSession,
    report_id: int,
    caller: CallerIdentity,
    now: datetime,
    unit: Optional[str] = None,
    message: Optional[str] = None,
    goal: Optional[str] = None,
) -> LessonReport:
    """Overwrite only the supplied sections. report_status stays completed."""
    if unit is None and message is None and goal is None:
        raise ValidationError("Nothing to update")

    report = await db.get(LessonReport, report_id)
    if report is None:
        raise NotFound("Report not found")
    booking = await _tutor_booking(db, report.booking_id, caller)
    _ensure_reportable(booking, now)

    current = _sections_of(report)
    updated = ReportSections(
        unit=current.unit if unit is None else _clean(unit),
        message=current.message if message is None else _clean(message),
        goal=current.goal if goal is None else _clean(goal),
    )
    if updated.is_empty():
        raise ValidationError("At least one report section must be filled in")

    report.unit_content = updated.unit
    report.message_content = updated.message
    report.goal_content = updated.goal
    booking.report_content = report_format.compose(updated)
    await _commit(db, "report_edit", report_id=report_id)
    await db.refresh(report)

    record_report_operation("edited")
    logger.info("report_edited", report_id=report.id, booking_id=booking.id)
    return report


async def view_report(db: AsyncSession, booking_id: int, caller: CallerIdentity) -> dict:
    """
    Sections for display: the structured row when there is one, otherwise
    parsed back out of the booking's composite text.
    """
    booking = await get_booking_for(db, booking_id, caller)
    report = await _report_for_booking(db, booking.id)
    if report is not None:
        sections = _sections_of(report)
        source = "structured"
    else:
        sections = report_format.parse(booking.report_content)
        source = "legacy"

    return {
        "booking_id": booking.id,
        "report_id": report.id if report is not None else None,
        "status": (
            ReportStatus.COMPLETED.value
            if report is not None or report_format.is_completed(booking.report_status)
            else ReportStatus.PENDING.value
        ),
        "unit": sections.unit,
        "message": sections.message,
        "goal": sections.goal,
        "source": source,
    }


async def migrate_legacy_reports(db: AsyncSession) -> int:
    """
    Create lesson_reports rows for bookings that only carry composite text.
    Bookings that already have a row are skipped. Returns the number created.
    """
    migrated_ids = select(LessonReport.booking_id)
    result = await db.execute(
        select(Booking).where(
            Booking.report_content.is_not(None),
            Booking.report_content != "",
            Booking.id.not_in(migrated_ids),
        )
    )
    created = 0
    for booking in result.scalars().all():
        sections = report_format.parse(booking.report_content)
        db.add(
            LessonReport(
                booking_id=booking.id,
                tutor_id=booking.tutor_id,
                student_id=booking.student_id,
                unit_content=sections.unit,
                message_content=sections.message,
                goal_content=sections.goal,
            )
        )
        if report_format.is_completed(booking.report_status):
            booking.report_status = ReportStatus.COMPLETED.value
        created += 1

    await _commit(db, "report_migration")
    logger.info("legacy_reports_migrated", count=created)
    return created
