"""
Forms service - prefilled Typeform links and driver invitation emails.

The link carries monday_id (the driver id) as a hidden field, which is what
the Typeform webhook handler later uses to find the driver again.
Email goes out through SendGrid; without an API key the message is only
logged, so local environments never send real mail.
"""
import asyncio
import html as html_lib
import logging
import uuid
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlencode

from src.config import get_settings
from src.schemas.drivers import DriverRecord

logger = logging.getLogger(__name__)

TYPEFORM_BASE_URL = "https://form.typeform.com/to/"
QR_CODE_BASE_URL = "https://api.qrserver.com/v1/create-qr-code/"
INVITATION_SUBJECT = "Driver Application Follow-up"


class FormInvitationError(RuntimeError):
    """The invitation email could not be sent."""


@dataclass(frozen=True)
class FormInvitationResult:
    sent: bool
    prefilled_url: str
    qr_code_url: str
    message_id: str


def build_prefilled_url(form_id: str, prefill_fields: dict[str, str]) -> str:
    """Typeform hidden fields go in the URL fragment."""
    return f"{TYPEFORM_BASE_URL}{quote(form_id, safe='')}#{urlencode(prefill_fields)}"


def build_qr_code_url(url: str) -> str:
    return f"{QR_CODE_BASE_URL}?size=220x220&data={quote(url, safe='')}"


def _render_invitation(first_name: str, prefilled_url: str, qr_code_url: str) -> tuple[str, str]:
    greeting = f"Hi {first_name}," if first_name else "Hi,"
    # Driver names come from form submissions
    safe_greeting = html_lib.escape(greeting)
    safe_url = html_lib.escape(prefilled_url)
    html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 32px 20px;">
      <h1 style="color: #111; font-size: 22px;">{safe_greeting}</h1>
      <p style="color: #444; font-size: 15px; line-height: 1.6;">
        Thanks for your continued interest in the <strong>Driver Role</strong>.
        We just need a little more information from you to help us move forward.
      </p>
      <p style="color: #444; font-size: 15px; line-height: 1.6;">
        Please complete this short form about your availability and basic details.
        It should only take a few minutes.
      </p>
      <div style="text-align: center; margin: 28px 0;">
        <a href="{safe_url}" style="background: #1f6feb; color: white; padding: 12px 28px; border-radius: 6px; text-decoration: none; font-weight: 600;">
          Complete the Form
        </a>
      </div>
      <div style="text-align: center;">
        <p style="color: #777; font-size: 13px;">Or scan the QR code to open the form:</p>
        <img src="{html_lib.escape(qr_code_url)}" alt="QR code to form" style="max-width: 150px;" />
      </div>
    </div>
    """
    text = (
        f"{greeting}\n\n"
        "Thanks for your continued interest in the Driver Role. "
        "We just need a little more information from you to help us move forward.\n\n"
        f"Please complete this short form:\n{prefilled_url}\n"
    )
    return html, text


async def _send_email(to_email: str, subject: str, html_content: str, text_content: str) -> str:
    """Send via SendGrid and return the provider message id."""
    settings = get_settings()
    if not settings.sendgrid_api_key:
        message_id = f"log-{uuid.uuid4()}"
        logger.info(
            "SendGrid not configured, logging form invitation: to=%s subject=%s message_id=%s",
            to_email[:20] + "***", subject, message_id,
        )
        return message_id

    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Content, Email, Mail, To

    message = Mail(
        from_email=Email(settings.forms_sender_email, settings.forms_sender_name),
        to_emails=To(to_email),
        subject=subject,
    )
    message.content = [
        Content("text/plain", text_content),
        Content("text/html", html_content),
    ]

    sg = SendGridAPIClient(api_key=settings.sendgrid_api_key)
    # Offload synchronous SendGrid SDK call to thread pool
    loop = asyncio.get_running_loop()
    response = await loop.run_in_executor(None, lambda: sg.send(message))
    return response.headers.get("X-Message-Id", "")


async def send_additional_details_form(
    driver: DriverRecord,
    monday_id: Optional[str] = None,
) -> FormInvitationResult:
    """Email the driver a prefilled additional-details form."""
    settings = get_settings()
    if not driver.email:
        raise ValueError(f"Driver {driver.id} has no email address")

    prefilled_url = build_prefilled_url(
        settings.additional_details_form_id,
        {
            "first_name": driver.first_name,
            "last_name": driver.last_name,
            "email": driver.email,
            "phone_number": driver.phone,
            "monday_id": monday_id or driver.id,
        },
    )
    qr_code_url = build_qr_code_url(prefilled_url)
    html, text = _render_invitation(driver.first_name, prefilled_url, qr_code_url)

    try:
        message_id = await _send_email(driver.email, INVITATION_SUBJECT, html, text)
    except Exception as e:
        logger.error(
            "Form invitation failed: driver=%s error=%s", driver.id, str(e),
            extra={"driver_id": driver.id},
        )
        raise FormInvitationError(
            f"Failed to send additional details form: {e}"
        ) from e

    logger.info("Form invitation sent: driver=%s message_id=%s", driver.id, message_id)
    return FormInvitationResult(
        sent=True,
        prefilled_url=prefilled_url,
        qr_code_url=qr_code_url,
        message_id=message_id,
    )
