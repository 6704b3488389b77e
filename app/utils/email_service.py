"""
Email Service
Sends transactional emails over SMTP using the configured server.
"""
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


def send_email(
    to_email: str,
    subject: str,
    body_html: str,
    body_text: Optional[str] = None,
) -> bool:
    """
    Send an email through SMTP.

    Args:
        to_email: Recipient email address
        subject: Email subject
        body_html: HTML email body
        body_text: Plain text alternative (optional)

    Returns:
        bool: True if the server accepted the message, False otherwise
    """
    msg = MIMEMultipart("alternative")
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject

    if body_text:
        msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(body_html, "html"))

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as server:
            if settings.SMTP_STARTTLS:
                server.starttls()
            if settings.SMTP_USERNAME:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)

        logger.info(f"Email sent successfully to {to_email}")
        return True

    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"SMTP authentication failed: {str(e)}")
        return False
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"SMTP error: {str(e)}")
        return False


def send_email_change_verification(to_email: str, name: Optional[str], verify_url: str) -> bool:
    """Email the link that confirms a pending email address change (valid 30 minutes)."""
    greeting = f"Hello {name}," if name else "Hello,"
    safe_greeting = html.escape(greeting)
    safe_email = html.escape(to_email)
    safe_url = html.escape(verify_url, quote=True)

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <body style="margin: 0; background: #f1f5f9; font-family: Helvetica, Arial, sans-serif; color: #0f172a;">
        <table role="presentation" width="100%" cellpadding="0" cellspacing="0">
            <tr><td align="center" style="padding: 32px 12px;">
                <table role="presentation" width="560" style="background: #ffffff; border-radius: 10px; padding: 28px;">
                    <tr><td>
                        <h2 style="margin-top: 0;">Confirm your new email</h2>
                        <p>{safe_greeting}</p>
                        <p>Someone asked to move your Expense Tracker sign-in to <strong>{safe_email}</strong>.</p>
                        <p style="text-align: center; margin: 28px 0;">
                            <a href="{safe_url}" style="background: #0f766e; color: #ffffff; padding: 12px 22px; border-radius: 6px; text-decoration: none;">Confirm Email</a>
                        </p>
                        <p style="font-size: 13px; color: #475569;">The link stops working after 30 minutes. Not you? Ignore this message and nothing changes.</p>
                    </td></tr>
                </table>
            </td></tr>
        </table>
    </body>
    </html>
    """

    text_body = (
        f"{greeting}\n\n"
        f"Confirm your new email address for Expense Tracker:\n{verify_url}\n\n"
        f"This link expires in 30 minutes. If you did not request this change, ignore this email.\n"
    )

    return send_email(
        to_email=to_email,
        subject="Confirm your new email address",
        body_html=html_body,
        body_text=text_body,
    )
