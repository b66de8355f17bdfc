# =============================================================================
# lib/mailer.py - Email Transport
# =============================================================================
# Two ways to get an email out of the door:
# - send_email(): direct SMTP (port 465 = implicit TLS, otherwise STARTTLS)
# - invoke_edge_function(): relay through a Supabase Edge Function
#
# Neither raises on delivery failure; callers get an EmailResult / bool and
# decide whether the failure matters.
# =============================================================================

import logging
import re
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any

from app.config import settings
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30


@dataclass
class InlineImage:
    """An image embedded in the HTML body via ``cid:``."""
    cid: str
    content: bytes
    filename: str
    subtype: str = "png"


@dataclass
class EmailResult:
    """Outcome of a send attempt."""
    success: bool
    error: str | None = None
    message_id: str | None = None


@dataclass
class OutgoingEmail:
    """Everything needed to send one message."""
    to: str
    subject: str
    html: str
    text: str | None = None
    inline_images: list[InlineImage] = field(default_factory=list)


# =============================================================================
# Message Building
# =============================================================================

_TAG_RE = re.compile(r"<[^>]+>")
_STYLE_RE = re.compile(r"<(style|script)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_WS_RE = re.compile(r"[ \t]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def html_to_text(html: str) -> str:
    """Crude plain-text alternative: drop style blocks and tags, squeeze whitespace."""
    text = _STYLE_RE.sub("", html)
    text = _TAG_RE.sub("", text)
    text = _WS_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def sender_address() -> str:
    """Formatted From header (display name + address)."""
    address = settings.SMTP_FROM or settings.SMTP_USER or ""
    return formataddr((settings.SMTP_FROM_NAME, address))


def build_message(email: OutgoingEmail) -> EmailMessage:
    """
    Build a multipart/alternative message.

    Inline images are attached to the HTML part as multipart/related so
    ``<img src="cid:...">`` references resolve in mail clients.
    """
    message = EmailMessage()
    message["Subject"] = email.subject
    message["From"] = sender_address()
    message["To"] = email.to
    message["Message-ID"] = make_msgid(domain=(settings.SMTP_FROM or settings.SMTP_USER or "localhost").split("@")[-1])

    message.set_content(email.text or html_to_text(email.html))
    message.add_alternative(email.html, subtype="html")

    if email.inline_images:
        html_part = message.get_payload()[1]
        for image in email.inline_images:
            html_part.add_related(
                image.content,
                maintype="image",
                subtype=image.subtype,
                cid=f"<{image.cid}>",
                filename=image.filename,
            )

    return message


# =============================================================================
# Transports
# =============================================================================

def send_email(email: OutgoingEmail) -> EmailResult:
    """
    Send an email over SMTP.

    Returns:
        EmailResult with success False (and the error) instead of raising
    """
    if not settings.smtp_configured:
        logger.error("SMTP credentials not configured")
        return EmailResult(success=False, error="SMTP credentials not configured")

    message = build_message(email)

    try:
        if settings.SMTP_PORT == 465:
            server = smtplib.SMTP_SSL(
                settings.SMTP_HOST,
                settings.SMTP_PORT,
                timeout=SMTP_TIMEOUT_SECONDS,
                context=ssl.create_default_context(),
            )
        else:
            server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS)

        with server:
            if settings.SMTP_PORT != 465:
                server.starttls(context=ssl.create_default_context())
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.send_message(message)

        logger.info(f"Email sent to {email.to}: {email.subject}")
        return EmailResult(success=True, message_id=message["Message-ID"])

    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {email.to}: {e}")
        return EmailResult(success=False, error=str(e))


def invoke_edge_function(name: str, body: dict[str, Any]) -> bool:
    """
    Invoke a Supabase Edge Function that sends an email.

    Returns:
        True if the function accepted the request
    """
    try:
        client = SupabaseClient.get_client()
        client.functions.invoke(name, invoke_options={"body": body})
        logger.info(f"Edge function {name} invoked")
        return True
    except Exception as e:
        logger.error(f"Error calling {name} edge function: {e}")
        return False
