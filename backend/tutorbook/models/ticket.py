"""
Append-only ticket ledger.

A balance is SUM(quantity) over a holder's rows: purchases and refunds are
positive, booking debits negative. Rows are never updated or deleted.
A holder is either a student (per-student tickets) or a user account
(legacy account-level tickets), never both.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index, func

from tutorbook.db.base import Base


class TicketGrant(Base):
    __tablename__ = "student_tickets"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    quantity = Column(Integer, nullable=False)
    description = Column(String(255), nullable=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="check_ticket_quantity_nonzero"),
        CheckConstraint(
            "(student_id IS NULL) <> (user_id IS NULL)", name="check_ticket_single_holder"
        ),
        Index("ix_student_tickets_student", "student_id"),
        Index("ix_student_tickets_user", "user_id"),
    )

    def __repr__(self) -> str:
        holder = f"student={self.student_id}" if self.student_id else f"user={self.user_id}"
        return f"<TicketGrant(id={self.id}, {holder}, quantity={self.quantity})>"
