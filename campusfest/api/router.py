"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from campusfest.api.routes import attendance, events, registrations, teams

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(registrations.router)
api_router.include_router(attendance.router)
api_router.include_router(teams.router)
