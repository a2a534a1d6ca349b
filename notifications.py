"""
Ticket notifications

Builds the ticket email for a booking: a QR code pointing at the
verification URL, either dropped into caller-supplied HTML as a data URL or
attached inline (content-id) to the default ticket template.
"""

import base64
import io
from typing import Any, Dict, List, NamedTuple, Optional

import qrcode
from jinja2 import Environment, select_autoescape

from mailer import InlineImage

QR_PLACEHOLDER = "{{QR_CODE}}"
QR_CID = "ticket-qr"
DEFAULT_SUBJECT = "Your Ticket"
DEFAULT_TEXT = "Here is your ticket"

_env = Environment(autoescape=select_autoescape(default=True))

TICKET_TEMPLATE = _env.from_string(
    """<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #222;">
    <h2>{{ event.title if event and event.title else "Your Ticket" }}</h2>
    <p>Hello {{ booking.firstName or "" }} {{ booking.lastName or "" }},</p>
    <p>Your booking is confirmed. Show the QR code below at the entrance.</p>
    <table cellpadding="4">
      <tr><td><b>Ticket number</b></td><td>{{ booking.ticketNumber }}</td></tr>
      <tr><td><b>Ticket type</b></td><td>{{ booking.ticketType or "-" }}</td></tr>
      {% if event %}
      <tr><td><b>Date</b></td><td>{{ event.date or "-" }} {{ event.eventTime or "" }}</td></tr>
      <tr><td><b>Venue</b></td><td>{{ event.location or "-" }}{% if event.address %}, {{ event.address }}{% endif %}</td></tr>
      {% endif %}
      <tr><td><b>Status</b></td><td>{{ booking.status }}</td></tr>
    </table>
    <p><img src="cid:{{ cid }}" alt="Ticket QR code" width="200" height="200"></p>
    <p style="font-size: 12px;">Or verify at <a href="{{ verify_url }}">{{ verify_url }}</a></p>
  </body>
</html>
"""
)


class TicketEmail(NamedTuple):
    subject: str
    text: str
    html: str
    inline_images: List[InlineImage]
    qr_data_url: str


def verification_url(base_url: str, ticket_number: int) -> str:
    return f"{base_url.rstrip('/')}/{ticket_number}"


def qr_png(data: str) -> bytes:
    buf = io.BytesIO()
    qrcode.make(data).save(buf, format="PNG")
    return buf.getvalue()


def png_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def qr_data_url(data: str) -> str:
    return png_data_url(qr_png(data))


def render_ticket_html(booking: Dict[str, Any], event: Optional[Dict[str, Any]], verify_url: str) -> str:
    return TICKET_TEMPLATE.render(booking=booking, event=event, verify_url=verify_url, cid=QR_CID)


def build_ticket_email(
    booking: Dict[str, Any],
    event: Optional[Dict[str, Any]],
    verify_base_url: str,
    subject: Optional[str] = None,
    message: Optional[str] = None,
    html_content: Optional[str] = None,
) -> TicketEmail:
    url = verification_url(verify_base_url, booking["ticketNumber"])
    png = qr_png(url)
    data_url = png_data_url(png)

    if html_content:
        html = html_content.replace(QR_PLACEHOLDER, data_url)
        inline_images = []
    else:
        html = render_ticket_html(booking, event, url)
        inline_images = [InlineImage(cid=QR_CID, data=png)]

    return TicketEmail(
        subject=subject or DEFAULT_SUBJECT,
        text=message or DEFAULT_TEXT,
        html=html,
        inline_images=inline_images,
        qr_data_url=data_url,
    )
