"""
Send support-form messages to the support inbox through Resend.
"""
import html
import logging
import os
from typing import Optional

import resend

from app.core.errors import ConfigurationError, UnknownError

logger = logging.getLogger(__name__)

RESEND_API_KEY = os.getenv("RESEND_API_KEY", "").strip()
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "")
SENDER_EMAIL = os.getenv("SENDER_EMAIL", "Article Insights <onboarding@resend.dev>")
APP_NAME = os.getenv("APP_NAME", "Article Insights")


def send_support_request(name: str, email: str, subject: str, message: str) -> Optional[str]:
    """
    Forward a support request; replies go straight to the requester.
    Returns the provider message id.
    """
    if not RESEND_API_KEY or not SUPPORT_EMAIL:
        logger.error("Support email not configured (RESEND_API_KEY / SUPPORT_EMAIL)")
        raise ConfigurationError("Email service not configured. Please contact the administrator.")

    resend.api_key = RESEND_API_KEY
    body_html = f"""
    <h2>New Support Request</h2>
    <p><strong>From:</strong> {html.escape(name)}</p>
    <p><strong>Email:</strong> {html.escape(email)}</p>
    <p><strong>Subject:</strong> {html.escape(subject)}</p>
    <p><strong>Message:</strong></p>
    <p>{html.escape(message).replace(chr(10), '<br>')}</p>
    <p style="color: #666; font-size: 12px;">Sent from the {APP_NAME} support form.</p>
    """
    body_text = f"New Support Request\n\nFrom: {name}\nEmail: {email}\nSubject: {subject}\n\nMessage:\n{message}"

    params = {
        "from": SENDER_EMAIL,
        "to": [SUPPORT_EMAIL],
        "reply_to": email,
        "subject": f"Support Request: {subject}",
        "html": body_html.strip(),
        "text": body_text,
    }
    try:
        sent = resend.Emails.send(params)
    except Exception as e:
        logger.error("[support_email] Failed to send support request from %s: %s", email, e)
        raise UnknownError(f"Failed to send email: {e}", original_exception=e) from e

    message_id = sent.get("id") if isinstance(sent, dict) else getattr(sent, "id", None)
    logger.info("[support_email] Support email sent: %s", message_id)
    return message_id
