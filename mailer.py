"""
SMTP mail transport
"""

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import List, NamedTuple, Optional, Protocol

logger = logging.getLogger(__name__)


class MailError(Exception):
    pass


class InlineImage(NamedTuple):
    cid: str
    data: bytes
    subtype: str = "png"


class Mailer(Protocol):
    def send(
        self,
        to: str,
        subject: str,
        text: str,
        html: str,
        inline_images: Optional[List[InlineImage]] = None,
    ) -> None: ...


def build_message(
    sender: str,
    to: str,
    subject: str,
    text: str,
    html: str,
    inline_images: Optional[List[InlineImage]] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text)
    msg.add_alternative(html, subtype="html")
    if inline_images:
        html_part = msg.get_payload()[1]
        for image in inline_images:
            html_part.add_related(
                image.data,
                maintype="image",
                subtype=image.subtype,
                cid=f"<{image.cid}>",
            )
    return msg


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        user: Optional[str],
        password: Optional[str],
        sender: Optional[str] = None,
        timeout: float = 30,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        if not sender and user:
            sender = formataddr(("Event Ticket", user))
        self.sender = sender
        self.timeout = timeout

    def send(self, to, subject, text, html, inline_images=None):
        if not self.sender:
            raise MailError("No sender address configured, set EMAIL_FROM or EMAIL_USER")
        msg = build_message(self.sender, to, subject, text, html, inline_images)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.starttls()
                if self.user and self.password:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailError(f"Sending mail to {to} failed: {e}") from e
        logger.info("Mail sent to %s (%s)", to, subject)
