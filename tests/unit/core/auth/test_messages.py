"""Tests for token email bodies."""

from __future__ import annotations

from datetime import timedelta

from idplane.core.auth import messages


class TestMessages:
    """Tests for the email composers."""

    def test_build_link_encodes_token(self) -> None:
        """Links carry the token as a query parameter."""
        link = messages.build_link("https://app.example.com/", "/auth/reset-password", "a-b_c")

        assert link == "https://app.example.com/auth/reset-password?token=a-b_c"

    def test_setup_email(self) -> None:
        """The setup email links to the setup page and states the lifetime."""
        email = messages.setup_password_email("https://app", "tok", ttl=timedelta(hours=24))

        assert "https://app/auth/setup-password?token=tok" in email.body
        assert "24 hours" in email.body

    def test_reset_email_short_lifetime(self) -> None:
        """Sub-hour lifetimes are given in minutes."""
        email = messages.password_reset_email("https://app", "tok", ttl=timedelta(minutes=30))

        assert "30 minutes" in email.body
        assert "/auth/reset-password?token=tok" in email.body

    def test_invitation_email_greets_by_name(self) -> None:
        """Invitations address the invitee by name."""
        email = messages.invitation_email(
            "https://app", "tok", ttl=timedelta(hours=1), full_name="Bob"
        )

        assert email.body.startswith("Hello Bob,")
        assert "1 hour." in email.body

    def test_verification_email(self) -> None:
        """The verification email links to the verify page."""
        email = messages.email_verification_email("https://app", "tok", ttl=timedelta(hours=24))

        assert "token=tok" in email.body
