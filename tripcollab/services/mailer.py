from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Any

from tripcollab.core.celery_utils import safe_celery_delay
from tripcollab.core.config import settings
from tripcollab.models import Trip, TripInvite

logger = logging.getLogger(__name__)


def invite_link(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/invite/{token}"


def build_invite_email(invite: TripInvite, trip: Trip | None) -> dict[str, Any]:
    """Addressing and template data for an invite e-mail."""
    if trip and (trip.city or trip.country):
        destination = ", ".join(part for part in (trip.city, trip.country) if part)
    else:
        destination = trip.title if trip else "your trip destination"

    if trip and trip.start_date and trip.end_date:
        dates = f"{trip.start_date.isoformat()} to {trip.end_date.isoformat()}"
    else:
        dates = "your travel dates"

    return {
        "to_address": invite.invitee_email,
        "from_name": invite.inviter_name,
        "subject": f"{invite.inviter_name} invited you to collaborate on their family trip",
        "template_data": {
            "inviter_name": invite.inviter_name,
            "trip_destination": destination,
            "trip_dates": dates,
            "invite_link": invite_link(invite.token),
            "role": invite.role,
            "personal_message": invite.message,
            "expires_at": invite.expires_at.isoformat(),
        },
    }


def render_invite_body(template_data: dict[str, Any]) -> str:
    lines = [
        f"{template_data['inviter_name']} invited you to help plan a trip to "
        f"{template_data['trip_destination']} ({template_data['trip_dates']}) "
        f"as a {template_data['role']}.",
        "",
    ]
    if template_data.get("personal_message"):
        lines += [f"\"{template_data['personal_message']}\"", ""]
    lines += [
        f"Accept or decline the invitation here: {template_data['invite_link']}",
        f"The link expires on {template_data['expires_at']}.",
    ]
    return "\n".join(lines)


def send_email(to_address: str, from_name: str, subject: str, body: str) -> bool:
    """Send a plain-text e-mail. Returns False when no SMTP server is configured."""
    if not settings.SMTP_HOST:
        logger.info(f"SMTP not configured, invite e-mail to {to_address} only logged: {subject}")
        return False

    message = EmailMessage()
    message["From"] = f"{from_name} <{settings.SMTP_FROM}>"
    message["To"] = to_address
    message["Subject"] = subject
    message.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as smtp:
        smtp.starttls()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        smtp.send_message(message)

    logger.info(f"Invite e-mail sent to {to_address}")
    return True


class InviteNotifier:
    """Fire-and-forget invite e-mails through Celery."""

    def send_invite(self, invite: TripInvite, trip: Trip | None) -> None:
        from tripcollab.tasks.invites import send_invite_email_task

        email = build_invite_email(invite, trip)
        safe_celery_delay(send_invite_email_task, invite_id=str(invite.id), **email)
