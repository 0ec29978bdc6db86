"""
Lesson report edits. Filing and viewing live under /bookings/{id}/report.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.api.deps import get_caller
from tutorbook.core.clock import Clock, get_clock
from tutorbook.db.session import get_db
from tutorbook.models.report import LessonReport
from tutorbook.schemas.report import ReportEdit, ReportResponse
from tutorbook.services import report_lifecycle
from tutorbook.services.identity import CallerIdentity

router = APIRouter(prefix="/reports", tags=["Reports"])


def report_response(report: LessonReport) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        booking_id=report.booking_id,
        tutor_id=report.tutor_id,
        student_id=report.student_id,
        unit=report.unit_content or "",
        message=report.message_content or "",
        goal=report.goal_content or "",
        updated_at=report.updated_at,
    )


@router.put("/{report_id}", response_model=ReportResponse)
async def edit_report(
    report_id: int,
    report_data: ReportEdit,
    caller: CallerIdentity = Depends(get_caller),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Overwrite the supplied sections; omitted sections are kept."""
    report = await report_lifecycle.edit_report(
        db,
        report_id,
        caller,
        clock.now(),
        unit=report_data.unit,
        message=report_data.message,
        goal=report_data.goal,
    )
    return report_response(report)
