"""
Calendar invites: build an RFC 5545 payload and mail it as an attachment.
"""

from __future__ import annotations

import base64
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from icalendar import Calendar, Event

from memories.errors import BadRequestError, ServerError, UpstreamError, missing_fields_error
from memories.mail import Attachment, MailProviderError, MailResult, MailSender

logger = logging.getLogger(__name__)

PRODID = "-//Sweet Dreams//Invite//RU"
ATTACHMENT_NAME = "invite.ics"
ATTACHMENT_TYPE = "text/calendar"
REQUIRED_FIELDS = ("city", "place", "date", "timeStart", "timeEnd")


@dataclass
class InviteRequest:
    city: Optional[str] = None
    place: Optional[str] = None
    date: Optional[str] = None
    time_start: Optional[str] = None
    time_end: Optional[str] = None
    email: Optional[str] = None

    def validate(self) -> None:
        values = {
            "city": self.city,
            "place": self.place,
            "date": self.date,
            "timeStart": self.time_start,
            "timeEnd": self.time_end,
        }
        missing = [name for name in REQUIRED_FIELDS if not (values[name] or "").strip()]
        if missing:
            raise missing_fields_error(missing)

    def event_day(self):
        try:
            return datetime.strptime(self.date.strip(), "%Y-%m-%d").date()
        except ValueError as exc:
            raise BadRequestError(f"Invalid date {self.date!r}, expected YYYY-MM-DD") from exc

    @staticmethod
    def _parse_time(value: str, name: str) -> time:
        try:
            return datetime.strptime(value.strip(), "%H:%M").time()
        except ValueError as exc:
            raise BadRequestError(f"Invalid {name} {value!r}, expected HH:MM") from exc

    def bounds(self, tz: ZoneInfo) -> tuple[datetime, datetime]:
        """Local start/end; an end at or before the start rolls to the next day."""
        day = self.event_day()
        start = datetime.combine(day, self._parse_time(self.time_start, "timeStart"), tz)
        end = datetime.combine(day, self._parse_time(self.time_end, "timeEnd"), tz)
        if end <= start:
            end += timedelta(days=1)
        return start, end


def build_invite_ics(
    request: InviteRequest,
    tz_name: str = "Europe/Moscow",
    uid_domain: str = "sweet-dreams",
    now: Optional[datetime] = None,
) -> str:
    tz = ZoneInfo(tz_name)
    start, end = request.bounds(tz)

    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "REQUEST")

    event = Event()
    event.add("uid", f"{uuid.uuid4().hex}@{uid_domain}")
    event.add("dtstamp", now or datetime.now(timezone.utc))
    event.add("dtstart", start)
    event.add("dtend", end)
    event.add("summary", "💖 Встреча")
    event.add("description", f"Скоро увидимся! {request.city}, {request.place}.")
    event.add("location", f"{request.place}, {request.city}")
    event.add("status", "CONFIRMED")
    event.add("sequence", 0)
    event.add("transp", "OPAQUE")
    cal.add_component(event)

    return cal.to_ical().decode("utf-8")


def ics_attachment(ics: str) -> Attachment:
    content = base64.b64encode(ics.encode("utf-8")).decode("ascii")
    return Attachment(filename=ATTACHMENT_NAME, content_type=ATTACHMENT_TYPE, content=content)


def invite_bodies(request: InviteRequest) -> tuple[str, str, str]:
    """Return subject, HTML body and plaintext body."""
    span = f"{request.time_start}–{request.time_end}"
    subject = f"💌 Встреча: {request.city}, {request.place}"
    html = (
        f"<p>Скоро увидимся в <b>{request.city}</b>!<br>"
        f"📍 {request.place}<br>📅 {request.date}<br>⏰ {span}</p>"
    )
    text = f"Скоро увидимся в {request.city}, {request.place}, {request.date}, {span}"
    return subject, html, text


class InviteComposer:
    def __init__(
        self,
        mail_sender: MailSender,
        default_recipient: str,
        extra_recipients: Sequence[str] = (),
        tz_name: str = "Europe/Moscow",
        uid_domain: str = "sweet-dreams",
    ):
        self.mail_sender = mail_sender
        self.default_recipient = default_recipient
        self.extra_recipients = list(extra_recipients)
        self.tz_name = tz_name
        self.uid_domain = uid_domain

    def recipients_for(self, email: Optional[str]) -> list[str]:
        primary = (email or "").strip() or self.default_recipient
        recipients = [primary]
        for extra in self.extra_recipients:
            if extra not in recipients:
                recipients.append(extra)
        return recipients

    def send_invite(self, request: InviteRequest) -> MailResult:
        request.validate()
        ics = build_invite_ics(request, self.tz_name, self.uid_domain)
        subject, html, text = invite_bodies(request)
        recipients = self.recipients_for(request.email)

        try:
            result = self.mail_sender.send(
                recipients, subject, html, text, [ics_attachment(ics)]
            )
        except MailProviderError as exc:
            logger.error("Mail provider rejected invite: %s", exc.message)
            raise UpstreamError(exc.message, exc.details) from exc
        except Exception as exc:
            logger.exception("Failed to send invite")
            raise ServerError("Server error") from exc

        logger.info("Invite sent to %s via %s", ", ".join(recipients), result.provider)
        return result
