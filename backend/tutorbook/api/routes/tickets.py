"""
Ticket endpoints: purchase, balance and ledger history.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.api.deps import get_caller
from tutorbook.core.exceptions import NotFound
from tutorbook.db.session import get_db
from tutorbook.schemas.ticket import TicketPurchase, TicketBalanceResponse, TicketEntry
from tutorbook.services import ticket_ledger
from tutorbook.services.identity import CallerIdentity
from tutorbook.services.ticket_ledger import TicketHolder

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("/purchase", response_model=TicketBalanceResponse)
async def purchase_tickets(
    purchase: TicketPurchase,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a ticket purchase, either per student ({items: [...]}) or on the
    caller's own account ({quantity: n}). Returns the new balances.
    """
    items = [(item.student_id, item.quantity) for item in purchase.items or []]
    return await ticket_ledger.purchase(db, caller, items=items, quantity=purchase.quantity)


@router.get("/balance", response_model=TicketBalanceResponse)
async def get_balance(
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await ticket_ledger.balances_for(db, caller)


@router.get("/history", response_model=list[TicketEntry])
async def get_history(
    student_id: Optional[int] = Query(None, alias="studentId"),
    limit: int = Query(100, ge=1, le=500),
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Ledger rows for one of the caller's students, or for the account itself."""
    if student_id is None:
        holder = TicketHolder.user(caller.user_id)
    elif caller.can_act_for_student(student_id):
        holder = TicketHolder.student(student_id)
    else:
        raise NotFound("Student not found", details={"student_id": student_id})
    return await ticket_ledger.history(db, holder, limit=limit)
