"""Outbound email transports.

Both clients expose the same narrow contract used by the delivery worker
and the subscription flow::

    send_email(recipient, subject, html_content, text_content) -> None

and raise ``DeliveryError`` when the message could not be handed over.
Neither client retries: retry policy belongs to the delivery worker.

Safety: recipient addresses are never logged.
"""
from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import httpx

from newsletter.core.errors import DeliveryError
from newsletter.core.settings import Settings
from newsletter.domain.subscriber import SubscriberEmail

logger = logging.getLogger(__name__)


class EmailGateway(Protocol):
    def send_email(
        self,
        recipient: SubscriberEmail,
        subject: str,
        html_content: str,
        text_content: str,
    ) -> None:
        ...


# ---------------------------------------------------------------------------
# HTTP API client
# ---------------------------------------------------------------------------

class EmailClient:
    """Send email through a JSON-over-HTTP delivery API.

    Parameters
    ----------
    base_url:
        API root; messages are POSTed to ``{base_url}/email``.
    sender:
        Validated ``From`` address.
    authorization_token:
        Bearer token for the API.
    timeout_s:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        sender: SubscriberEmail,
        authorization_token: str,
        timeout_s: float = 10.0,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.sender = sender
        self.authorization_token = authorization_token
        self.timeout_s = timeout_s
        self._http = http_client or httpx.Client(timeout=timeout_s)

    def send_email(
        self,
        recipient: SubscriberEmail,
        subject: str,
        html_content: str,
        text_content: str,
    ) -> None:
        payload = {
            "from": {"email": self.sender.value},
            "to": [{"email": recipient.value}],
            "subject": subject,
            "text": text_content,
            "html": html_content,
        }
        try:
            response = self._http.post(
                f"{self.base_url}/email",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.authorization_token}",
                    "X-Requested-With": "XMLHttpRequest",
                },
                timeout=self.timeout_s,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise DeliveryError(f"Email API timed out after {self.timeout_s}s") from exc
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(f"Email API returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Email API request failed: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise DeliveryError(f"Email API URL is invalid: {exc}") from exc

    def close(self) -> None:
        self._http.close()


# ---------------------------------------------------------------------------
# SMTP client
# ---------------------------------------------------------------------------

class SmtpEmailClient:
    """Send multipart (text + html) email through an SMTP relay."""

    def __init__(
        self,
        smtp_host: str,
        sender: SubscriberEmail,
        smtp_port: int = 25,
        timeout_s: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender
        self.timeout_s = timeout_s

    def send_email(
        self,
        recipient: SubscriberEmail,
        subject: str,
        html_content: str,
        text_content: str,
    ) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender.value
        msg["To"] = recipient.value
        msg.attach(MIMEText(text_content, "plain"))
        msg.attach(MIMEText(html_content, "html"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_s) as server:
                server.sendmail(self.sender.value, [recipient.value], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"SMTP delivery failed: {exc}") from exc
        logger.debug("Handed message to SMTP relay %s:%d", self.smtp_host, self.smtp_port)

    def close(self) -> None:
        pass


def build_email_client(settings: Settings) -> EmailClient | SmtpEmailClient:
    """Return the transport selected by ``EMAIL_TRANSPORT``."""
    sender = SubscriberEmail.parse(settings.email_sender)
    timeout_s = settings.email_timeout_ms / 1000
    if settings.email_transport == "smtp":
        return SmtpEmailClient(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            sender=sender,
            timeout_s=timeout_s,
        )
    return EmailClient(
        base_url=settings.email_base_url,
        sender=sender,
        authorization_token=settings.email_authorization_token,
        timeout_s=timeout_s,
    )
