"""Invite e-mails: content, queueing and the delivery task."""

from __future__ import annotations

from datetime import date, datetime
from unittest.mock import MagicMock, patch

import pytest

from tripcollab.core.config import settings
from tripcollab.models import Trip, TripInvite
from tripcollab.services.mailer import (
    InviteNotifier,
    build_invite_email,
    render_invite_body,
    send_email,
)
from tripcollab.tasks.invites import send_invite_email_task


def _invite(**overrides) -> TripInvite:
    values = dict(
        inviter_id="owner@x.com",
        inviter_name="Olivia",
        invitee_email="a@x.com",
        role="viewer",
        token="tok-123",
        message="Come along!",
        expires_at=datetime(2026, 7, 8, 12, 0),
    )
    values.update(overrides)
    return TripInvite(**values)


def _trip(**overrides) -> Trip:
    values = dict(
        owner_id="owner@x.com",
        title="Summer",
        city="Lisbon",
        country="Portugal",
        start_date=date(2026, 7, 10),
        end_date=date(2026, 7, 20),
        modified_by="owner@x.com",
    )
    values.update(overrides)
    return Trip(**values)


def test_build_invite_email(monkeypatch):
    monkeypatch.setattr(settings, "FRONTEND_URL", "https://trips.example.com/")

    email = build_invite_email(_invite(), _trip())

    assert email["to_address"] == "a@x.com"
    assert email["subject"] == "Olivia invited you to collaborate on their family trip"
    data = email["template_data"]
    assert data["trip_destination"] == "Lisbon, Portugal"
    assert data["trip_dates"] == "2026-07-10 to 2026-07-20"
    assert data["invite_link"] == "https://trips.example.com/invite/tok-123"
    assert data["personal_message"] == "Come along!"


def test_build_invite_email_without_trip_details():
    trip = _trip(city=None, country=None, start_date=None, end_date=None)

    data = build_invite_email(_invite(message=None), trip)["template_data"]

    assert data["trip_destination"] == "Summer"
    assert data["trip_dates"] == "your travel dates"
    assert "Come along" not in render_invite_body(data)


def test_render_invite_body_mentions_link_and_role():
    data = build_invite_email(_invite(), _trip())["template_data"]

    body = render_invite_body(data)

    assert data["invite_link"] in body
    assert "as a viewer" in body
    assert '"Come along!"' in body


def test_send_email_without_smtp_only_logs(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "")

    with patch("tripcollab.services.mailer.smtplib.SMTP") as smtp:
        assert send_email("a@x.com", "Olivia", "Hi", "Body") is False

    smtp.assert_not_called()


def test_send_email_over_smtp(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(settings, "SMTP_USER", "mailer")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "secret")

    with patch("tripcollab.services.mailer.smtplib.SMTP") as smtp:
        assert send_email("a@x.com", "Olivia", "Hi", "Body") is True

    connection = smtp.return_value.__enter__.return_value
    connection.starttls.assert_called_once()
    connection.login.assert_called_once_with("mailer", "secret")
    message = connection.send_message.call_args.args[0]
    assert message["To"] == "a@x.com"
    assert message["Subject"] == "Hi"


def test_notifier_queues_task():
    invite = _invite()

    with patch("tripcollab.services.mailer.safe_celery_delay") as delay:
        InviteNotifier().send_invite(invite, _trip())

    task = delay.call_args.args[0]
    kwargs = delay.call_args.kwargs
    assert task is send_invite_email_task
    assert kwargs["invite_id"] == str(invite.id)
    assert kwargs["to_address"] == "a@x.com"
    assert kwargs["template_data"]["role"] == "viewer"


def test_task_without_smtp_reports_not_sent(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "")
    data = build_invite_email(_invite(), _trip())

    result = send_invite_email_task(invite_id="00000000-0000-0000-0000-000000000000", **data)

    assert result == {"success": True, "invite_id": "00000000-0000-0000-0000-000000000000", "sent": False}


def test_task_surfaces_smtp_errors_when_called_directly():
    data = build_invite_email(_invite(), _trip())

    with patch("tripcollab.tasks.invites.send_email", MagicMock(side_effect=OSError("refused"))):
        with pytest.raises(OSError):
            send_invite_email_task(invite_id="00000000-0000-0000-0000-000000000000", **data)
