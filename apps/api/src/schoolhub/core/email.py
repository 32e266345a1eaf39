"""
Email Service using Resend

Sends the transactional emails of the parent-student verification flow.
Sending is best-effort: failures are logged and reported as False, never
raised, so a mail outage cannot undo a committed relationship.
"""

import asyncio
import logging
from html import escape

import resend

from schoolhub.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

VERIFY_SUBJECT = "Verify Parent-Student Relationship"
STUDENT_LINK_SUBJECT = "Verify Your Relationship with Student"
NEW_PARENT_SUBJECT = "Your New Parent Account and Student Verification"

_LAYOUT = """
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 40px 20px; }}
        .header {{ color: #1a365d; margin-bottom: 24px; }}
        .button {{ display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 12px 8px 12px 0; }}
        .button-secondary {{ background-color: #9ca3af; }}
        .info-box {{ background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }}
        .footer {{ margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }}
    </style>
</head>
<body>
    <div class="container">
        <h1 class="header">{title}</h1>
        {body}
        <div class="footer">
            <p>If you did not expect this email, you can safely ignore it or contact support.</p>
            <p>SchoolHub - School Management System</p>
        </div>
    </div>
</body>
</html>
"""


def verification_link(token: str, reject: bool = False) -> str:
    """Frontend link that opens the verification page for ``token``."""
    link = f"{settings.frontend_url}/parent-verification?token={token}"
    if reject:
        link += "&reject=true"
    return link


def _greeting(first_name: str | None) -> str:
    return f"Hello {escape(first_name)}," if first_name else "Hello,"


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
        True if the email was sent (or logged when no API key is configured)
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

        # The Resend client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_relationship_verification(
    to_email: str,
    parent_first_name: str | None,
    student_name: str,
    relationship_type: str,
    token: str,
    expires_in: str = "7 days",
) -> bool:
    """Ask an existing parent account to confirm or reject a relationship."""
    verify_url = verification_link(token)
    reject_url = verification_link(token, reject=True)
    body = f"""
        <p>{_greeting(parent_first_name)}</p>
        <p>A request has been made to link your account to <strong>{escape(student_name)}</strong>
        as their {escape(relationship_type)}.</p>
        <p>Please confirm or reject this relationship:</p>
        <a href="{verify_url}" class="button">Verify Relationship</a>
        <a href="{reject_url}" class="button button-secondary">Reject</a>
        <p><strong>This link expires in {escape(expires_in)}.</strong></p>
    """
    return await send_email(
        to_email=to_email,
        subject=VERIFY_SUBJECT,
        html_content=_LAYOUT.format(title="Verify Parent-Student Relationship", body=body),
    )


async def send_student_link_verification(
    to_email: str,
    parent_first_name: str | None,
    student_name: str,
    token: str,
    expires_in: str = "48 hours",
) -> bool:
    """Tell an existing parent that a student has listed them as parent."""
    verify_url = verification_link(token)
    body = f"""
        <p>{_greeting(parent_first_name)}</p>
        <p><strong>{escape(student_name)}</strong> has added you as their parent/guardian on SchoolHub.</p>
        <p>Please click the button below to verify this relationship:</p>
        <a href="{verify_url}" class="button">Verify Relationship</a>
        <p><strong>This link expires in {escape(expires_in)}.</strong></p>
    """
    return await send_email(
        to_email=to_email,
        subject=STUDENT_LINK_SUBJECT,
        html_content=_LAYOUT.format(title="Student Verification Request", body=body),
    )


async def send_parent_invitation(
    to_email: str,
    parent_first_name: str | None,
    student_name: str,
    token: str,
    expires_in: str = "48 hours",
) -> bool:
    """Invite someone without an account to register and verify in one step."""
    verify_url = verification_link(token)
    body = f"""
        <p>{_greeting(parent_first_name)}</p>
        <p><strong>{escape(student_name)}</strong> has added you as their parent/guardian on SchoolHub.</p>
        <p>Create your parent account to verify this relationship:</p>
        <a href="{verify_url}" class="button">Register and Verify</a>
        <p><strong>This link expires in {escape(expires_in)}.</strong></p>
    """
    return await send_email(
        to_email=to_email,
        subject=NEW_PARENT_SUBJECT,
        html_content=_LAYOUT.format(title="Welcome to SchoolHub", body=body),
    )


async def send_parent_account_created(
    to_email: str,
    parent_first_name: str | None,
    student_name: str,
    token: str,
    temporary_password: str,
    expires_in: str = "48 hours",
) -> bool:
    """Send the credentials of an account created on the parent's behalf."""
    verify_url = verification_link(token)
    sign_in_url = f"{settings.frontend_url}/auth/sign-in"
    body = f"""
        <p>{_greeting(parent_first_name)}</p>
        <p><strong>{escape(student_name)}</strong> has added you as their parent/guardian on SchoolHub.
        We've created a parent account for you:</p>
        <div class="info-box">
            <p><strong>Email:</strong> {escape(to_email)}</p>
            <p><strong>Temporary Password:</strong> {escape(temporary_password)}</p>
        </div>
        <p>Please <a href="{sign_in_url}">sign in</a> and change your password as soon as possible.</p>
        <p>Then verify your relationship with {escape(student_name)}:</p>
        <a href="{verify_url}" class="button">Verify Relationship</a>
        <p><strong>This verification link expires in {escape(expires_in)}.</strong></p>
    """
    return await send_email(
        to_email=to_email,
        subject=NEW_PARENT_SUBJECT,
        html_content=_LAYOUT.format(title="Your New Parent Account", body=body),
    )
