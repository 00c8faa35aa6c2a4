"""
Attendance endpoint: organizers check participants in by ticket id.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.core.security import require_organizer
from campusfest.db.session import get_db
from campusfest.models.user import User
from campusfest.schemas.registration import AttendanceMark, AttendanceResponse
from campusfest.services.event_service import mark_attendance

router = APIRouter(prefix="/attendance", tags=["Attendance"])


@router.post("/mark", response_model=AttendanceResponse)
async def mark_attendance_endpoint(
    body: AttendanceMark,
    organizer: User = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
):
    record = await mark_attendance(db, body.ticket_id, organizer)
    return AttendanceResponse(
        message="Attendance marked",
        ticket_id=record.registration.ticket_id,
        event_id=record.event.id,
        event_name=record.event.name,
        participant_email=record.participant_email,
        attended_at=record.registration.attended_at,
    )
