"""
Pydantic schemas for lesson reports.
"""

from datetime import datetime
from typing import Optional

from tutorbook.schemas.base import CamelModel


class ReportFile(CamelModel):
    unit: Optional[str] = ""
    message: Optional[str] = ""
    goal: Optional[str] = ""


class ReportEdit(CamelModel):
    unit: Optional[str] = None
    message: Optional[str] = None
    goal: Optional[str] = None


class ReportResponse(CamelModel):
    id: int
    booking_id: int
    tutor_id: int
    student_id: Optional[int]
    unit: str
    message: str
    goal: str
    updated_at: Optional[datetime] = None


class ReportView(CamelModel):
    booking_id: int
    report_id: Optional[int]
    status: str
    unit: str
    message: str
    goal: str
    source: str
