"""Tests for the SMTP email service."""

import smtplib
from unittest.mock import MagicMock, patch

from carecal.email.service import EmailService, html_to_text


def test_html_to_text():
    """Tags are stripped and whitespace collapsed."""
    assert html_to_text("<p>Hi\n   <b>Bob</b></p>") == "Hi Bob"


def test_build_message():
    """Messages carry a text part and an HTML alternative."""
    message = EmailService().build_message("bob@example.com", "Hello", "<p>Hi <b>Bob</b></p>")
    assert message["To"] == "bob@example.com"
    assert message["From"] == "CareCal <noreply@example.com>"
    assert message.get_body(preferencelist=("plain",)).get_content().strip() == "Hi Bob"
    assert "<b>Bob</b>" in message.get_body(preferencelist=("html",)).get_content()


def test_send_email_success():
    """Messages go out through the SMTP connection."""
    service = EmailService()
    server = MagicMock()
    with patch.object(service, "_connect") as connect:
        connect.return_value.__enter__.return_value = server
        assert service.send_email("bob@example.com", "Hello", "<p>Hi <b>Bob</b></p>") is True

    server.send_message.assert_called_once()
    assert server.send_message.call_args.args[0]["Subject"] == "Hello"


def test_send_email_failure():
    """SMTP and network errors are logged and reported as False."""
    service = EmailService()
    with patch.object(service, "_connect", side_effect=smtplib.SMTPException("refused")):
        assert service.send_email("bob@example.com", "Hello", "<p>Hi</p>") is False
    with patch.object(service, "_connect", side_effect=ConnectionRefusedError()):
        assert service.send_email("bob@example.com", "Hello", "<p>Hi</p>") is False


def test_appointment_invitation_content():
    """Appointment invitations name the appointment and escape user input."""
    service = EmailService()
    with patch.object(service, "send_email", return_value=True) as send:
        sent = service.send_invitation_email(
            to_email="bob@example.com",
            kind="appointment",
            permission="write",
            inviter_name="Alice <script>",
            resource_label="Blood test & ECG",
            accept_url="https://carecal.test/accept-invitation?token=abc",
        )

    assert sent is True
    to_email, subject, body = send.call_args.args
    assert to_email == "bob@example.com"
    assert "shared an appointment" in subject
    assert "Blood test &amp; ECG" in body
    assert "Alice &lt;script&gt;" in body
    assert "view and edit it" in body
    assert "https://carecal.test/accept-invitation?token=abc" in body


def test_dashboard_invitation_content():
    """Dashboard invitations describe access to all appointments."""
    service = EmailService()
    with patch.object(service, "send_email", return_value=True) as send:
        service.send_invitation_email(
            to_email="bob@example.com",
            kind="dashboard",
            permission="full",
            inviter_name="Alice",
            resource_label="Alice Owner",
            accept_url="https://carecal.test/accept-invitation?token=abc",
        )

    _, subject, body = send.call_args.args
    assert "shared their calendar" in subject
    assert "all appointments" in body
    assert "view, edit and delete them" in body


def test_verification_email_content():
    """The verification email carries the link."""
    service = EmailService()
    with patch.object(service, "send_email", return_value=True) as send:
        service.send_verification_email(
            "dana@example.com", None, "https://carecal.test/api/auth/verify-email?token=t"
        )

    _, subject, body = send.call_args.args
    assert "Verify Your Email" in subject
    assert "Welcome to CareCal, there!" in body
    assert "verify-email?token=t" in body
