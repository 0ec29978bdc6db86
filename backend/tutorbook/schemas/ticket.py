"""
Pydantic schemas for ticket purchases, balances and ledger history.
"""

from datetime import datetime
from typing import Optional
from pydantic import Field

from tutorbook.schemas.base import CamelModel


class PurchaseItem(CamelModel):
    student_id: int
    quantity: int = Field(..., gt=0, le=1000)


class TicketPurchase(CamelModel):
    items: Optional[list[PurchaseItem]] = None
    # Legacy form: tickets on the account itself
    quantity: Optional[int] = Field(None, gt=0, le=1000)


class TicketBalanceResponse(CamelModel):
    account: int
    students: dict[int, int]
    total: int


class TicketEntry(CamelModel):
    id: int
    student_id: Optional[int]
    user_id: Optional[int]
    quantity: int
    description: Optional[str]
    booking_id: Optional[int]
    created_at: datetime
