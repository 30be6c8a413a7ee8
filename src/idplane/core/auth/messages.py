"""Email bodies that carry one-time token links."""

from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import urlencode

SIGNATURE = """
Best regards,
The Platform Team
"""


@dataclass(frozen=True)
class EmailContent:
    """Subject and plain text body of an outgoing email."""

    subject: str
    body: str


def build_link(frontend_url: str, path: str, token: str) -> str:
    """Build the frontend URL that redeems ``token``."""
    return f"{frontend_url.rstrip('/')}{path}?{urlencode({'token': token})}"


def _describe(ttl: timedelta) -> str:
    hours = int(ttl.total_seconds() // 3600)
    if hours >= 1:
        return f"{hours} hour" + ("s" if hours != 1 else "")
    minutes = max(int(ttl.total_seconds() // 60), 1)
    return f"{minutes} minute" + ("s" if minutes != 1 else "")


def setup_password_email(frontend_url: str, token: str, ttl: timedelta) -> EmailContent:
    """Welcome email for a tenant's first administrator."""
    link = build_link(frontend_url, "/auth/setup-password", token)
    body = f"""Hello,

Welcome! Please click the link below to set your password and activate your account:

{link}

This link will expire in {_describe(ttl)}.

If you didn't request this, please ignore this email.
{SIGNATURE}"""
    return EmailContent(subject="Set Your Password - Welcome to the Platform", body=body)


def invitation_email(
    frontend_url: str,
    token: str,
    ttl: timedelta,
    full_name: str,
) -> EmailContent:
    """Invitation email for a user added by an administrator."""
    link = build_link(frontend_url, "/auth/register", token)
    body = f"""Hello {full_name},

You have been invited to join your team on the platform. Click the link
below to choose a password and finish creating your account:

{link}

This invitation will expire in {_describe(ttl)}.
{SIGNATURE}"""
    return EmailContent(subject="You're Invited - Complete Your Registration", body=body)


def password_reset_email(frontend_url: str, token: str, ttl: timedelta) -> EmailContent:
    """Password reset email."""
    link = build_link(frontend_url, "/auth/reset-password", token)
    body = f"""Hello,

We received a request to reset your password. Click the link below to choose a new one:

{link}

This link will expire in {_describe(ttl)}.

If you didn't request a password reset, you can safely ignore this email.
{SIGNATURE}"""
    return EmailContent(subject="Reset Your Password", body=body)


def email_verification_email(frontend_url: str, token: str, ttl: timedelta) -> EmailContent:
    """Email address verification email."""
    link = build_link(frontend_url, "/auth/verify-email", token)
    body = f"""Hello,

Please confirm your email address by clicking the link below:

{link}

This link will expire in {_describe(ttl)}.
{SIGNATURE}"""
    return EmailContent(subject="Verify Your Email Address", body=body)
