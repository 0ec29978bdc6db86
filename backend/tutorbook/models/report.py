"""
Lesson report: the tutor's structured write-up of one finished lesson.

Key design decisions:
- Unique booking_id: one report per booking, filing again overwrites it
- Sections are stored separately; bookings.report_content keeps the
  composite text built from them
- tutor_id and student_id are copied from the booking so reports can be
  listed without a join
"""

from sqlalchemy import Column, Integer, Text, ForeignKey

from tutorbook.db.base import Base, TimestampMixin


class LessonReport(Base, TimestampMixin):
    __tablename__ = "lesson_reports"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    tutor_id = Column(Integer, ForeignKey("tutors.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True, index=True)
    unit_content = Column(Text, nullable=False, default="")
    message_content = Column(Text, nullable=False, default="")
    goal_content = Column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<LessonReport(id={self.id}, booking={self.booking_id})>"
