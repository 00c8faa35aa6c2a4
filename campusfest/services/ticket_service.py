"""
Ticket issuance.

A ticket is a (ticket_id, qr_code) pair bound to exactly one Registration.
Identifiers carry 64 random bits behind a readable prefix, e.g.
``TKT-9F3A0C21B47E55D0``. Randomness makes collisions negligible but not
impossible, so the issuer checks the registrations table before binding an
id and the unique constraint on ``registrations.ticket_id`` backs it up.

Re-issuing for the same Registration overwrites the previous ticket.
"""

import base64
import json
import secrets
from dataclasses import dataclass
from io import BytesIO

import qrcode
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.core.config import get_settings
from campusfest.core.errors import IntegrityViolation, RejectionReason
from campusfest.core.logging import get_logger
from campusfest.core.metrics import ticket_id_retries
from campusfest.models.registration import Registration

logger = get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class Ticket:
    ticket_id: str
    qr_code: str


def generate_ticket_id(prefix: str) -> str:
    return f"{prefix}-{secrets.token_hex(8).upper()}"


def build_payload(ticket_id: str, event_name: str, participant_email: str) -> str:
    return json.dumps(
        {"ticket_id": ticket_id, "event": event_name, "participant": participant_email},
        sort_keys=True,
        separators=(",", ":"),
    )


def render_qr(payload: str) -> str:
    """Encode a payload as a PNG QR code data URL."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = BytesIO()
    img.save(buffered, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffered.getvalue()).decode("ascii")


async def _unused_ticket_id(db: AsyncSession) -> str:
    for attempt in range(1, settings.TICKET_ID_RETRIES + 1):
        candidate = generate_ticket_id(settings.TICKET_PREFIX)
        taken = await db.scalar(select(Registration.id).where(Registration.ticket_id == candidate))
        if taken is None:
            return candidate
        ticket_id_retries.inc()
        logger.warning("ticket_id_collision", attempt=attempt)

    raise IntegrityViolation(
        RejectionReason.TICKET_COLLISION,
        f"Could not allocate a unique ticket id after {settings.TICKET_ID_RETRIES} attempts",
    )


async def issue_ticket(
    db: AsyncSession,
    registration: Registration,
    event_name: str,
    participant_email: str,
) -> Ticket:
    """
    Bind a fresh ticket to a registration, replacing any previous one.
    The caller commits.
    """
    ticket_id = await _unused_ticket_id(db)
    qr_code = render_qr(build_payload(ticket_id, event_name, participant_email))

    previous = registration.ticket_id
    registration.ticket_id = ticket_id
    registration.qr_code = qr_code

    logger.info(
        "ticket_issued",
        ticket_id=ticket_id,
        event_name=event_name,
        reissued=previous is not None,
    )
    return Ticket(ticket_id=ticket_id, qr_code=qr_code)
