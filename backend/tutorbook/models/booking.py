"""
Booking: a student's reservation of one tutor shift, paid with one ticket.

Key design decisions:
- Partial unique index on shift_id WHERE status = 'confirmed' is the database
  backstop for "at most one active booking per shift"
- Status never goes back to confirmed; cancelled rows are kept for audit
- `completed` is normally derived from the lesson date, not written
- report_content keeps the composite report text older screens read
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Date, Text, ForeignKey, CheckConstraint, Index, text,
)

from tutorbook.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True, index=True)
    tutor_id = Column(Integer, ForeignKey("tutors.id"), nullable=False, index=True)
    shift_id = Column(Integer, ForeignKey("tutor_shifts.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    time_slot = Column(String(20), nullable=False)
    subject = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value)
    report_status = Column(String(40), nullable=False, default=ReportStatus.PENDING.value)
    report_content = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'completed')", name="check_booking_status"
        ),
        Index(
            "uq_bookings_active_shift",
            "shift_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
        Index("ix_bookings_tutor_date", "tutor_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, shift={self.shift_id}, status={self.status})>"
