"""
Tutor shift: one tutor, one date, one fixed time band.

Key design decisions:
- Unique (tutor_id, date, time_slot) makes "set availability" an upsert
- Rows are never deleted, only toggled via is_available
- "Consumed" is not stored: a shift is consumed while a confirmed booking
  references it (see the partial unique index on bookings.shift_id)
- `version` is bumped on every consume/release so stale writers lose
"""

from sqlalchemy import Column, Integer, String, Date, Boolean, ForeignKey, UniqueConstraint, Index

from tutorbook.db.base import Base, TimestampMixin


class TutorShift(Base, TimestampMixin):
    __tablename__ = "tutor_shifts"

    id = Column(Integer, primary_key=True, index=True)
    tutor_id = Column(Integer, ForeignKey("tutors.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    time_slot = Column(String(20), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("tutor_id", "date", "time_slot", name="uq_tutor_shift_slot"),
        # Open-shift search: "who is free on this date / band"
        Index("ix_tutor_shifts_date_slot", "date", "time_slot"),
    )

    @property
    def resource_key(self) -> str:
        return shift_key(self.tutor_id, self.date, self.time_slot)

    def __repr__(self) -> str:
        return (
            f"<TutorShift(id={self.id}, tutor={self.tutor_id}, date={self.date}, "
            f"slot={self.time_slot}, available={self.is_available})>"
        )


def shift_key(tutor_id, date, time_slot) -> str:
    return f"shift:{tutor_id}:{date.isoformat()}:{time_slot}"
