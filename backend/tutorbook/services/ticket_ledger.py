"""
Ticket ledger: append-only credits and debits per ticket holder.

LEDGER MODEL
============

Balance is never stored. It is SUM(quantity) over the holder's rows in
student_tickets, so purchases, booking debits and cancellation refunds can be
audited one by one, and any cached total elsewhere is just a projection.

Non-negative invariant:
  debit() locks the holder's row (students / users) with SELECT ... FOR UPDATE
  before summing, so two concurrent debits for the same holder serialize in
  the database: the second one sums after the first has committed and is
  rejected if the balance would go negative. Nothing is written on rejection.

debit() and credit() only flush. The caller owns the transaction, which is
how the booking engine pairs a debit with a booking insert atomically.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.exceptions import InsufficientBalance, NotFound, ValidationError
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import record_ticket_operation
from tutorbook.models.student import Student
from tutorbook.models.ticket import TicketGrant
from tutorbook.models.user import User
from tutorbook.services.identity import CallerIdentity

logger = get_logger(__name__)

PURCHASE_NOTE = "purchase"
BOOKING_DEBIT_NOTE = "booking debit"
CANCEL_REFUND_NOTE = "cancellation refund"


@dataclass(frozen=True)
class TicketHolder:
    """Exactly one of student_id / user_id is set."""

    student_id: Optional[int] = None
    user_id: Optional[int] = None

    def __post_init__(self):
        if (self.student_id is None) == (self.user_id is None):
            raise ValueError("A ticket holder is either a student or a user")

    @classmethod
    def student(cls, student_id: int) -> "TicketHolder":
        return cls(student_id=student_id)

    @classmethod
    def user(cls, user_id: int) -> "TicketHolder":
        return cls(user_id=user_id)

    @property
    def resource_key(self) -> str:
        if self.student_id is not None:
            return f"tickets:student:{self.student_id}"
        return f"tickets:user:{self.user_id}"

    def condition(self):
        if self.student_id is not None:
            return TicketGrant.student_id == self.student_id
        return TicketGrant.user_id == self.user_id

    def log_fields(self) -> dict:
        if self.student_id is not None:
            return {"student_id": self.student_id}
        return {"user_id": self.user_id}


async def balance(db: AsyncSession, holder: TicketHolder) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(TicketGrant.quantity), 0)).where(holder.condition())
    )
    return int(result.scalar_one())


async def _lock_holder(db: AsyncSession, holder: TicketHolder) -> None:
    """Row-lock the owning students/users row; also proves the holder exists."""
    if holder.student_id is not None:
        query = select(Student.id).where(Student.id == holder.student_id)
        missing = "Student not found"
    else:
        query = select(User.id).where(User.id == holder.user_id)
        missing = "User not found"
    found = (await db.execute(query.with_for_update())).scalar_one_or_none()
    if found is None:
        raise NotFound(missing)


def _grant(holder: TicketHolder, quantity: int, note: str, booking_id: Optional[int]) -> TicketGrant:
    return TicketGrant(
        student_id=holder.student_id,
        user_id=holder.user_id,
        quantity=quantity,
        description=note,
        booking_id=booking_id,
    )


async def credit(
    db: AsyncSession,
    holder: TicketHolder,
    quantity: int,
    note: str,
    booking_id: Optional[int] = None,
) -> TicketGrant:
    """Append a positive grant. No upper bound."""
    if quantity <= 0:
        record_ticket_operation("credit", ok=False)
        raise ValidationError("Ticket quantity must be positive", details={"quantity": quantity})

    entry = _grant(holder, quantity, note, booking_id)
    db.add(entry)
    await db.flush()

    record_ticket_operation("credit", ok=True)
    logger.info("ticket_credited", quantity=quantity, note=note, booking_id=booking_id, **holder.log_fields())
    return entry


async def debit(
    db: AsyncSession,
    holder: TicketHolder,
    quantity: int,
    note: str,
    booking_id: Optional[int] = None,
) -> TicketGrant:
    """Append a negative grant if the balance covers it, else InsufficientBalance."""
    if quantity <= 0:
        record_ticket_operation("debit", ok=False)
        raise ValidationError("Ticket quantity must be positive", details={"quantity": quantity})

    await _lock_holder(db, holder)
    current = await balance(db, holder)
    if current < quantity:
        record_ticket_operation("debit", ok=False)
        logger.warning(
            "ticket_debit_rejected",
            requested=quantity,
            available=current,
            **holder.log_fields(),
        )
        raise InsufficientBalance(details={"available": current, "requested": quantity})

    entry = _grant(holder, -quantity, note, booking_id)
    db.add(entry)
    await db.flush()

    record_ticket_operation("debit", ok=True)
    logger.info(
        "ticket_debited",
        quantity=quantity,
        note=note,
        booking_id=booking_id,
        remaining=current - quantity,
        **holder.log_fields(),
    )
    return entry


async def history(db: AsyncSession, holder: TicketHolder, limit: int = 100) -> list[TicketGrant]:
    result = await db.execute(
        select(TicketGrant)
        .where(holder.condition())
        .order_by(TicketGrant.created_at.desc(), TicketGrant.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def balances_for(db: AsyncSession, caller: CallerIdentity) -> dict:
    """Account-level balance plus one entry per student the caller acts for."""
    students = {}
    for student_id in sorted(caller.student_ids):
        students[student_id] = await balance(db, TicketHolder.student(student_id))
    account = await balance(db, TicketHolder.user(caller.user_id))
    return {
        "account": account,
        "students": students,
        "total": account + sum(students.values()),
    }


async def purchase(
    db: AsyncSession,
    caller: CallerIdentity,
    items: Optional[list[tuple[int, int]]] = None,
    quantity: Optional[int] = None,
) -> dict:
    """
    Record purchased tickets (payment is captured elsewhere).

    items: (student_id, quantity) pairs, each student must be one the caller
    acts for. quantity: legacy form, credited to the caller's own account.
    All credits commit together or not at all.
    """
    if not items and not quantity:
        raise ValidationError("Invalid request: must provide items or quantity")

    for student_id, _ in items or []:
        if not caller.can_act_for_student(student_id):
            raise NotFound("Student not found", details={"student_id": student_id})

    try:
        for student_id, item_quantity in items or []:
            await credit(db, TicketHolder.student(student_id), item_quantity, PURCHASE_NOTE)
        if quantity:
            await credit(db, TicketHolder.user(caller.user_id), quantity, PURCHASE_NOTE)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return await balances_for(db, caller)
