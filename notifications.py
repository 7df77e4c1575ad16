"""
Transactional email: order confirmations, operator order notices and
contact-form relays.
"""
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from html import escape
from typing import Any, Dict, List, Optional

import resend

from config import Settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    pass


class SmtpMailer:
    """Gmail-style SMTP over SSL using an app password."""

    def __init__(self, host: str, port: int, username: str, password: str, sender: str, sender_name: str):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.sender_name = sender_name

    def send(self, to: List[str], subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = formataddr((self.sender_name, self.sender))
        message["To"] = ", ".join(to)
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable email client.")
        message.add_alternative(html, subtype="html")
        with smtplib.SMTP_SSL(self.host, self.port) as smtp:
            smtp.login(self.username, self.password)
            smtp.send_message(message)


class ResendMailer:
    def __init__(self, api_key: str, sender: str, sender_name: str):
        self.api_key = api_key
        self.sender = sender
        self.sender_name = sender_name

    def send(self, to: List[str], subject: str, html: str) -> None:
        resend.api_key = self.api_key
        payload: Dict[str, object] = {
            "from": f"{self.sender_name} <{self.sender}>",
            "to": list(to),
            "subject": subject,
            "html": html,
        }
        response = resend.Emails.send(payload)
        if not isinstance(response, dict) or not response.get("id"):
            raise EmailDeliveryError(str(response))


def build_mailer(settings: Settings):
    if settings.email_backend == "smtp":
        if not (settings.smtp_user and settings.smtp_password):
            logger.warning("EMAIL_BACKEND=smtp but SMTP credentials are missing; email disabled")
            return None
        return SmtpMailer(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            settings.sender_email or settings.smtp_user,
            settings.sender_name,
        )
    if settings.email_backend == "resend":
        if not (settings.resend_api_key and settings.sender_email):
            logger.warning("EMAIL_BACKEND=resend but RESEND_API_KEY or SENDER_EMAIL is missing; email disabled")
            return None
        return ResendMailer(settings.resend_api_key, settings.sender_email, settings.sender_name)
    return None


def deliver_quietly(mailer, to: List[str], subject: str, html: str) -> None:
    """Background task: send one message; failures are logged, never raised."""
    recipients = [r for r in to if r]
    if mailer is None or not recipients:
        logger.warning("Email '%s' skipped: no mailer or recipient configured", subject)
        return
    try:
        mailer.send(recipients, subject, html)
    except Exception:
        logger.exception("Email '%s' to %s failed", subject, ", ".join(recipients))
        return
    logger.info("Email '%s' sent to %s", subject, ", ".join(recipients))


# ----- Message bodies -----

def _money(value: Any) -> str:
    try:
        return f"₹{float(value):.2f}"
    except (TypeError, ValueError):
        return f"₹{escape(str(value))}"


def order_confirmation_html(order: Dict[str, Any]) -> str:
    return f"""
<h2>Hi {escape(order.get("fullName", ""))},</h2>
<p>Thank you for your order!</p>
<p><strong>Total Amount:</strong> {_money(order.get("total"))}</p>
<p>We will contact you shortly.</p>
"""


def order_notification_html(order: Dict[str, Any], order_id: str) -> str:
    rows = "".join(
        f"<tr><td>{escape(str(item.get('name', '')))}</td>"
        f"<td>{escape(str(item.get('quantity', '')))}</td>"
        f"<td>{_money(item.get('price'))}</td></tr>"
        for item in order.get("cart", [])
    )
    contact = "".join(
        f"<p><strong>{label}:</strong> {escape(str(order.get(key) or ''))}</p>"
        for label, key in (
            ("Name", "fullName"),
            ("Email", "email"),
            ("Phone", "phone"),
            ("Address", "address"),
            ("Landmark", "landmark"),
            ("City", "city"),
            ("Pincode", "pincode"),
            ("Payment", "paymentMethod"),
        )
    )
    screenshot: Optional[str] = order.get("screenshotUrl")
    screenshot_block = (
        f'<p><strong>Payment screenshot:</strong></p><img src="{escape(screenshot, quote=True)}" '
        f'alt="Payment screenshot" style="max-width:400px" />'
        if screenshot
        else "<p>No payment screenshot attached.</p>"
    )
    return f"""
<h2>New order {escape(order_id)}</h2>
{contact}
<table border="1" cellpadding="6" cellspacing="0">
  <tr><th>Item</th><th>Qty</th><th>Price</th></tr>
  {rows}
</table>
<p><strong>Total:</strong> {_money(order.get("total"))}</p>
{screenshot_block}
"""


def contact_html(contact: Dict[str, Any]) -> str:
    message = escape(contact.get("message", "")).replace("\n", "<br />")
    return f"""
<h2>New contact form message</h2>
<p><strong>Name:</strong> {escape(contact.get("name", ""))}</p>
<p><strong>Email:</strong> {escape(contact.get("email", ""))}</p>
<p><strong>Subject:</strong> {escape(contact.get("subject", ""))}</p>
<p>{message}</p>
"""
