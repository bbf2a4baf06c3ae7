"""
Email Service using Resend

Low-level email delivery for student notifications. Message content lives
with the module that sends it; this module only renders the shared layout and
talks to Resend.
"""

import asyncio
import logging
from html import escape

import resend

from enrollment_hub.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.resend_api_key

_LAYOUT = """
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 40px 20px; }}
            .header {{ color: #1a365d; margin-bottom: 24px; }}
            .button {{ display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }}
            .footer {{ margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{heading}</h1>
            {body}
            {action}
            <div class="footer">
                <p>Enrollment Hub - Class Enrollment &amp; Waitlists</p>
            </div>
        </div>
    </body>
    </html>
    """


def render_email(
    heading: str,
    paragraphs: list[str],
    action_label: str | None = None,
    action_path: str | None = None,
) -> str:
    """
    Render a notification in the standard layout.

    All text is HTML-escaped; ``action_path`` is appended to ``frontend_url``.
    """
    body = "\n".join(f"<p>{escape(paragraph)}</p>" for paragraph in paragraphs)
    action = ""
    if action_label and action_path:
        url = f"{settings.frontend_url}{action_path}"
        action = f'<a href="{escape(url)}" class="button">{escape(action_label)}</a>'
    return _LAYOUT.format(heading=escape(heading), body=body, action=action)


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent (or logged, when no API key is configured)
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False
