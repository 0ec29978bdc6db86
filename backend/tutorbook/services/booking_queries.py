"""
Role-scoped booking listing.

Which bookings a caller sees depends only on the resolved CallerIdentity:
  - student: bookings where they attend
  - parent:  bookings they paid for, plus bookings of any student they own
  - tutor:   bookings on their own shifts
  - admin:   everything
Rows come back with tutor/student display names resolved in the same query.
"""

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.models.booking import Booking
from tutorbook.models.student import Student
from tutorbook.models.tutor import Tutor
from tutorbook.models.user import Role
from tutorbook.services.booking_engine import effective_status
from tutorbook.services.identity import CallerIdentity
from tutorbook.services.report_format import is_completed


def _scope(query, caller: CallerIdentity):
    if caller.role is Role.ADMIN:
        return query
    if caller.role is Role.TUTOR:
        return query.where(Booking.tutor_id == caller.tutor_id)
    if caller.role is Role.STUDENT:
        return query.where(Booking.student_id == caller.student_id)
    conditions = [Booking.user_id == caller.user_id]
    if caller.student_ids:
        conditions.append(Booking.student_id.in_(sorted(caller.student_ids)))
    return query.where(or_(*conditions))


async def list_bookings(db: AsyncSession, caller: CallerIdentity, now: datetime) -> list[dict]:
    query = (
        select(Booking, Tutor, Student)
        .join(Tutor, Tutor.id == Booking.tutor_id)
        .outerjoin(Student, Student.id == Booking.student_id)
        .order_by(Booking.date.desc(), Booking.time_slot.desc(), Booking.id.desc())
    )
    rows = (await db.execute(_scope(query, caller))).all()
    return [
        {
            "id": booking.id,
            "user_id": booking.user_id,
            "student_id": booking.student_id,
            "tutor_id": booking.tutor_id,
            "shift_id": booking.shift_id,
            "date": booking.date,
            "time_slot": booking.time_slot,
            "subject": booking.subject,
            "status": effective_status(booking, now),
            "report_status": "completed" if is_completed(booking.report_status) else "pending",
            "tutor_name": tutor.display_name,
            "student_name": student.display_name if student is not None else None,
            "created_at": booking.created_at,
        }
        for booking, tutor, student in rows
    ]
