"""Celery tasks for trip invites."""

from __future__ import annotations

import logging
import smtplib
from typing import Any
from uuid import UUID

from sqlmodel import Session

from tripcollab.celery_app import celery_app
from tripcollab.db import engine
from tripcollab.models import TripInvite
from tripcollab.services.invites import expire_stale_invites
from tripcollab.services.mailer import render_invite_body, send_email

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_invite_email_task(
    self,
    invite_id: str,
    to_address: str,
    from_name: str,
    subject: str,
    template_data: dict[str, Any],
) -> dict:
    """
    Deliver an invite e-mail and flag the invite as sent.

    Args:
        invite_id: Invite the e-mail belongs to
        to_address: Invitee e-mail
        from_name: Inviter display name
        subject: Mail subject
        template_data: Values rendered into the body

    Returns:
        dict: Delivery result
    """
    try:
        sent = send_email(to_address, from_name, subject, render_invite_body(template_data))
    except (smtplib.SMTPException, OSError) as exc:
        logger.error(f"Error sending invite {invite_id} to {to_address}: {exc}", exc_info=True)
        raise self.retry(exc=exc)

    if sent:
        with Session(engine) as session:
            invite = session.get(TripInvite, UUID(invite_id))
            if invite:
                invite.email_sent = True
                session.add(invite)
                session.commit()

    return {"success": True, "invite_id": invite_id, "sent": sent}


@celery_app.task
def expire_stale_invites_task() -> dict:
    """Periodic storage hygiene: mark pending invites past their expiry."""
    with Session(engine) as session:
        expired = expire_stale_invites(session)
    logger.info(f"Expired {expired} stale invites")
    return {"expired": expired}
