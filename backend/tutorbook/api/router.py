"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from tutorbook.api.routes import bookings, reports, shifts, tickets

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings.router)
api_router.include_router(reports.router)
api_router.include_router(shifts.router)
api_router.include_router(tickets.router)
