from tutorbook.schemas.booking import BookingCreate, BookingResponse, BookingListItem, BookingCancelResponse
from tutorbook.schemas.ticket import TicketPurchase, TicketBalanceResponse, TicketEntry
from tutorbook.schemas.shift import ShiftSet, ShiftResponse, TutorShiftItem, OpenShift
from tutorbook.schemas.report import ReportFile, ReportEdit, ReportResponse, ReportView

__all__ = [
    "BookingCreate", "BookingResponse", "BookingListItem", "BookingCancelResponse",
    "TicketPurchase", "TicketBalanceResponse", "TicketEntry",
    "ShiftSet", "ShiftResponse", "TutorShiftItem", "OpenShift",
    "ReportFile", "ReportEdit", "ReportResponse", "ReportView",
]
