from tutorbook.models.user import User, Role
from tutorbook.models.student import Student
from tutorbook.models.tutor import Tutor
from tutorbook.models.shift import TutorShift
from tutorbook.models.booking import Booking, BookingStatus, ReportStatus
from tutorbook.models.ticket import TicketGrant
from tutorbook.models.report import LessonReport

__all__ = [
    "User", "Role", "Student", "Tutor", "TutorShift",
    "Booking", "BookingStatus", "ReportStatus", "TicketGrant", "LessonReport",
]
