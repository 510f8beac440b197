"""SMTP transport on aiosmtplib, so a chain timeout cancels the send itself."""
from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from quote_delivery.models import RenderedNotification
from quote_delivery.transport.base import Sender, TransportError, format_address

logger = logging.getLogger(__name__)


class SmtpTransport:
    """Sends mail through an SMTP relay with STARTTLS or implicit TLS."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: Sender,
        use_tls: bool = True,
        timeout_seconds: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self._password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return "smtp"

    def build_message(self, notification: RenderedNotification, recipient: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = notification.subject
        msg["From"] = format_address(self.sender)
        msg["To"] = recipient
        if notification.cc:
            msg["Cc"] = ", ".join(notification.cc)

        msg.set_content(notification.text)
        msg.add_alternative(notification.html, subtype="html")
        for attachment in notification.attachments:
            maintype, _, subtype = attachment.mime_type.partition("/")
            msg.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return msg

    async def send(self, notification: RenderedNotification, recipient: str) -> None:
        msg = self.build_message(notification, recipient)
        try:
            # use_tls=True means STARTTLS on a plain port, False means implicit TLS.
            await aiosmtplib.send(
                msg,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self._password or None,
                start_tls=self.use_tls,
                use_tls=not self.use_tls,
                timeout=self.timeout_seconds,
            )
        except (aiosmtplib.SMTPRecipientsRefused, aiosmtplib.SMTPRecipientRefused) as e:
            raise TransportError.permanent(f"SMTP refused recipients: {e}", provider=self.name) from e
        except aiosmtplib.SMTPDataError as e:
            # 5xx on DATA is a content rejection, 4xx is a deferral.
            factory = TransportError.permanent if 500 <= e.code < 600 else TransportError.transient
            raise factory(f"SMTP rejected message data: {e}", provider=self.name) from e
        except (aiosmtplib.SMTPException, OSError) as e:
            raise TransportError.transient(f"SMTP send failed: {e}", provider=self.name) from e
        logger.info(f"SMTP relay {self.host} accepted message")
