"""
Mail sender abstraction with interchangeable providers.

Every provider exposes ``send(recipients, subject, html, text, attachments)``
and raises ``MailProviderError`` when the provider reports a failure or
answers with something we cannot interpret.
"""

from __future__ import annotations

import base64
import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Optional, Protocol, Sequence

import requests

from memories.config import Settings

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds

UNISENDER_URL = "https://go2.unisender.ru/ru/transactional/api/v1/email/send.json"
SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
RESEND_URL = "https://api.resend.com/emails"


class MailProviderError(Exception):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass
class Attachment:
    filename: str
    content_type: str
    # Base64-encoded payload.
    content: str

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.content)


@dataclass
class MailResult:
    provider: str
    message_id: Optional[str] = None
    data: Any = None


class MailSender(Protocol):
    """Delivers one email with optional attachments."""

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> MailResult:
        ...


def _json_or_error(response: requests.Response, provider: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise MailProviderError(
            f"{provider} returned a malformed response",
            {"status_code": response.status_code, "body": response.text[:500]},
        ) from exc


@dataclass
class InMemoryMailSender:
    """Records outgoing mail instead of sending it; used in tests and dev."""

    sent: list[dict] = field(default_factory=list)
    fail_with: Optional[str] = None

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> MailResult:
        if self.fail_with:
            raise MailProviderError(self.fail_with)
        self.sent.append(
            {
                "recipients": list(recipients),
                "subject": subject,
                "html": html,
                "text": text,
                "attachments": list(attachments),
            }
        )
        return MailResult(provider="memory", message_id=str(len(self.sent)))


@dataclass
class UniSenderMailSender:
    """UniSender Go transactional API."""

    api_key: str
    from_email: str
    from_name: str = ""
    url: str = UNISENDER_URL

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> MailResult:
        payload = {
            "api_key": self.api_key,
            "message": {
                "recipients": [{"email": email} for email in recipients],
                "subject": subject,
                "from_email": self.from_email,
                "from_name": self.from_name,
                "body": {"html": html, "plaintext": text},
                "attachments": [
                    {"type": a.content_type, "name": a.filename, "content": a.content}
                    for a in attachments
                ],
            },
        }
        logger.info("Sending mail via UniSender to %d recipients", len(recipients))
        response = requests.post(
            self.url,
            json=payload,
            headers={"X-API-KEY": self.api_key},
            timeout=REQUEST_TIMEOUT,
        )
        data = _json_or_error(response, "UniSender")
        if not isinstance(data, dict):
            raise MailProviderError("UniSender returned a malformed response", data)
        if not response.ok or data.get("status") == "error" or data.get("error"):
            error = data.get("error")
            message = (
                (error.get("message") if isinstance(error, dict) else error)
                or data.get("message")
                or "UniSender error"
            )
            raise MailProviderError(message, data)
        return MailResult(provider="unisender", message_id=data.get("job_id"), data=data)


@dataclass
class SendGridMailSender:
    """SendGrid v3 mail/send API."""

    api_key: str
    from_email: str
    from_name: str = ""
    url: str = SENDGRID_URL

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> MailResult:
        sender: dict = {"email": self.from_email}
        if self.from_name:
            sender["name"] = self.from_name
        payload: dict = {
            "personalizations": [{"to": [{"email": email} for email in recipients]}],
            "from": sender,
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        }
        if attachments:
            payload["attachments"] = [
                {
                    "content": a.content,
                    "type": a.content_type,
                    "filename": a.filename,
                    "disposition": "attachment",
                }
                for a in attachments
            ]
        logger.info("Sending mail via SendGrid to %d recipients", len(recipients))
        response = requests.post(
            self.url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=REQUEST_TIMEOUT,
        )
        if response.ok:
            return MailResult(
                provider="sendgrid",
                message_id=response.headers.get("X-Message-Id"),
            )
        data = _json_or_error(response, "SendGrid")
        errors = data.get("errors") if isinstance(data, dict) else None
        message = "SendGrid error"
        if errors and isinstance(errors, list) and isinstance(errors[0], dict):
            message = errors[0].get("message") or message
        raise MailProviderError(message, data)


@dataclass
class ResendMailSender:
    """Resend REST API."""

    api_key: str
    from_email: str
    from_name: str = ""
    url: str = RESEND_URL

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> MailResult:
        sender = (
            formataddr((self.from_name, self.from_email))
            if self.from_name
            else self.from_email
        )
        payload: dict = {
            "from": sender,
            "to": list(recipients),
            "subject": subject,
            "html": html,
            "text": text,
        }
        if attachments:
            payload["attachments"] = [
                {"filename": a.filename, "content": a.content} for a in attachments
            ]
        logger.info("Sending mail via Resend to %d recipients", len(recipients))
        response = requests.post(
            self.url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=REQUEST_TIMEOUT,
        )
        data = _json_or_error(response, "Resend")
        if not isinstance(data, dict):
            raise MailProviderError("Resend returned a malformed response", data)
        if not response.ok or "id" not in data:
            raise MailProviderError(data.get("message") or "Resend error", data)
        return MailResult(provider="resend", message_id=data["id"], data=data)


@dataclass
class SmtpMailSender:
    """Plain SMTP delivery (e.g. smtp.mail.ru); SSL on 465, STARTTLS otherwise."""

    host: str
    port: int
    username: str
    password: str
    from_email: str
    from_name: str = ""
    timeout: float = REQUEST_TIMEOUT

    def _build_message(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment],
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = ", ".join(recipients)
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        for a in attachments:
            maintype, _, subtype = a.content_type.partition("/")
            message.add_attachment(
                a.raw_bytes(),
                maintype=maintype or "application",
                subtype=subtype or "octet-stream",
                filename=a.filename,
            )
        return message

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        text: str,
        attachments: Sequence[Attachment] = (),
    ) -> MailResult:
        message = self._build_message(recipients, subject, html, text, attachments)
        logger.info("Sending mail via SMTP %s:%d", self.host, self.port)
        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if self.port != 465:
                    server.starttls()
                server.login(self.username, self.password)
                refused = server.send_message(message)
        except smtplib.SMTPException as exc:
            raise MailProviderError(f"SMTP error: {exc}") from exc
        if refused:
            raise MailProviderError("SMTP server refused recipients", refused)
        return MailResult(provider="smtp", message_id=message.get("Message-ID"))


def build_mail_sender(settings: Settings) -> MailSender:
    """Pick the configured provider."""
    provider = (settings.mail_provider or "").strip().lower()
    if settings.use_in_memory_backends or provider in ("memory", "dry-run"):
        return InMemoryMailSender()
    if provider == "unisender":
        return UniSenderMailSender(
            api_key=settings.unisender_api_key or "",
            from_email=settings.mail_from,
            from_name=settings.mail_from_name,
        )
    if provider == "sendgrid":
        return SendGridMailSender(
            api_key=settings.sendgrid_api_key or "",
            from_email=settings.mail_from,
            from_name=settings.mail_from_name,
        )
    if provider == "resend":
        return ResendMailSender(
            api_key=settings.resend_api_key or "",
            from_email=settings.mail_from,
            from_name=settings.mail_from_name,
        )
    if provider == "smtp":
        return SmtpMailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user or settings.mail_from,
            password=settings.smtp_password or "",
            from_email=settings.mail_from,
            from_name=settings.mail_from_name,
        )
    raise ValueError(f"Unknown mail provider: {settings.mail_provider}")
