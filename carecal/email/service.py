"""Email service for account and sharing notifications.

Delivery is best-effort: every public ``send_*`` method returns a bool and
logs failures instead of raising, so callers never fail because of SMTP.
"""

import logging
import re
import smtplib
import ssl
from email.message import EmailMessage
from html import escape

from carecal.config import get_settings

logger = logging.getLogger(__name__)

PERMISSION_DESCRIPTIONS = {
    "read": "view",
    "write": "view and edit",
    "full": "view, edit and delete",
}

_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def html_to_text(body_html: str) -> str:
    """Plain-text alternative of an HTML body."""
    return _WHITESPACE.sub(" ", _TAG.sub("", body_html)).strip()


class EmailService:
    """Sends notification emails over SMTP.

    Attributes:
        settings: Application settings containing SMTP configuration.
    """

    def __init__(self):
        self.settings = get_settings()

    @property
    def app_name(self) -> str:
        return self.settings.app_name

    @property
    def sender(self) -> str:
        return f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"

    def _connect(self) -> smtplib.SMTP:
        """Open an authenticated SMTP connection.

        Implicit TLS when ``smtp_use_tls`` is set (port 465), STARTTLS
        otherwise (port 587).

        Raises:
            smtplib.SMTPException: If the server refuses the connection.
            OSError: If the server cannot be reached.
        """
        host, port = self.settings.smtp_host, self.settings.smtp_port
        context = ssl.create_default_context()
        if self.settings.smtp_use_tls:
            server = smtplib.SMTP_SSL(host, port, context=context)
        else:
            server = smtplib.SMTP(host, port)
            server.starttls(context=context)

        if self.settings.smtp_user and self.settings.smtp_password:
            server.login(self.settings.smtp_user, self.settings.smtp_password)
        return server

    def build_message(
        self, to_email: str, subject: str, body_html: str, body_text: str | None = None
    ) -> EmailMessage:
        """Multipart message with a plain-text part and an HTML alternative."""
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to_email
        message.set_content(body_text if body_text is not None else html_to_text(body_html))
        message.add_alternative(body_html, subtype="html")
        return message

    def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: str | None = None,
    ) -> bool:
        """Send one email.

        Args:
            to_email: Recipient email address.
            subject: Email subject.
            body_html: HTML body content.
            body_text: Plain text body (derived from the HTML when omitted).

        Returns:
            bool: True if the server accepted the message.
        """
        message = self.build_message(to_email, subject, body_html, body_text)
        try:
            with self._connect() as server:
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Could not send '{subject}' to {to_email}: {e}")
            return False

        logger.info(f"Sent '{subject}' to {to_email}")
        return True

    def _button(self, url: str, label: str) -> str:
        return f"""
            <p style="margin: 20px 0;">
                <a href="{url}" style="background-color: #0f766e; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">
                    {label}
                </a>
            </p>
            <p>Or copy and paste this link into your browser:</p>
            <p style="word-break: break-all; color: #0f766e;">{url}</p>
        """

    def send_verification_email(
        self,
        to_email: str,
        display_name: str | None,
        verification_url: str,
    ) -> bool:
        """Send the email verification link to a new user.

        Args:
            to_email: User's email address.
            display_name: User's display name, if any.
            verification_url: Full URL to verify the address.

        Returns:
            bool: True if sent successfully.
        """
        greeting = escape(display_name) if display_name else "there"
        subject = f"{self.app_name} - Please Verify Your Email"
        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>Welcome to {self.app_name}, {greeting}!</h2>
            <p>Please verify your email address before signing in:</p>
            {self._button(verification_url, "Verify Email Address")}
            <p>If you didn't create an account on {self.app_name}, you can safely ignore this email.</p>
        </body>
        </html>
        """
        return self.send_email(to_email, subject, body_html)

    def send_invitation_email(
        self,
        to_email: str,
        kind: str,
        permission: str,
        inviter_name: str,
        resource_label: str,
        accept_url: str,
    ) -> bool:
        """Send a sharing invitation.

        Args:
            to_email: Invitee's email address.
            kind: "appointment" or "dashboard".
            permission: Granted level ("read", "write" or "full").
            inviter_name: Name or email of the person sharing.
            resource_label: Appointment title, or the owner's name for dashboards.
            accept_url: Redemption link carrying the invitation token.

        Returns:
            bool: True if sent successfully.
        """
        inviter = escape(inviter_name)
        label = escape(resource_label)
        can = PERMISSION_DESCRIPTIONS.get(permission, "view")

        if kind == "dashboard":
            subject = f"{self.app_name} - {inviter_name} shared their calendar with you"
            description = (
                f"{inviter} has invited you to access <strong>all appointments</strong> "
                f"of {label} on {self.app_name}. You will be able to {can} them."
            )
        else:
            subject = f"{self.app_name} - {inviter_name} shared an appointment with you"
            description = (
                f"{inviter} has invited you to the appointment <strong>{label}</strong> "
                f"on {self.app_name}. You will be able to {can} it."
            )

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>You've been invited</h2>
            <p>{description}</p>
            {self._button(accept_url, "Accept Invitation")}
            <p>If you weren't expecting this invitation, you can safely ignore this email.</p>
        </body>
        </html>
        """
        return self.send_email(to_email, subject, body_html)


# Singleton instance
_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get the email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
