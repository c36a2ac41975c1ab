"""Tests for the invitation API endpoints."""

from unittest.mock import patch

from carecal.db.models import AppointmentAssignee, GrantStatus


@patch("carecal.email.service.get_email_service")
def test_create_and_accept_invitation(mock_email, login_as, db, owner, bob, appointment):
    """Owner shares, invitee accepts, invitee can then read the appointment."""
    client = login_as(owner)
    response = client.post(
        "/api/invitations",
        json={
            "kind": "appointment",
            "resource_id": appointment.id,
            "email": "bob@example.com",
            "permission": "write",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["permission"] == "write"
    assert data["accept_url"].endswith(f"/accept-invitation?token={data['token']}")
    mock_email.return_value.send_invitation_email.assert_called_once()

    client = login_as(bob)
    response = client.get(f"/api/appointments/{appointment.id}")
    assert response.status_code == 403

    response = client.post("/api/invitations/accept", json={"token": data["token"]})
    assert response.status_code == 200
    accepted = response.json()
    assert accepted["status"] == "accepted"
    assert accepted["grant_id"] == data["id"]
    assert accepted["resource_id"] == appointment.id

    response = client.get(f"/api/appointments/{appointment.id}")
    assert response.status_code == 200
    assert response.json()["permission"] == "write"


@patch("carecal.email.service.get_email_service")
def test_accept_used_token_returns_404(mock_email, login_as, owner, bob, carol, appointment):
    """A used token and an unknown token give the same response."""
    client = login_as(owner)
    token = client.post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "bob@example.com"},
    ).json()["token"]

    assert login_as(bob).post("/api/invitations/accept", json={"token": token}).status_code == 200

    client = login_as(carol)
    used = client.post("/api/invitations/accept", json={"token": token})
    unknown = client.post("/api/invitations/accept", json={"token": "0" * 64})
    assert used.status_code == unknown.status_code == 404
    assert used.json() == unknown.json() == {"detail": "Invalid or already-used invitation"}


@patch("carecal.email.service.get_email_service")
def test_create_by_non_owner_returns_403(mock_email, login_as, db, bob, appointment):
    """Sharing someone else's appointment is forbidden and writes nothing."""
    client = login_as(bob)
    response = client.post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "carol@example.com"},
    )
    assert response.status_code == 403
    assert db.query(AppointmentAssignee).count() == 0


def test_create_validation(authenticated_client, appointment):
    """Unknown kind or permission is a bad request; a malformed email is 422."""
    client = authenticated_client
    response = client.post(
        "/api/invitations",
        json={"kind": "calendar", "resource_id": appointment.id, "email": "bob@example.com"},
    )
    assert response.status_code == 400

    response = client.post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "bob@example.com", "permission": "owner"},
    )
    assert response.status_code == 400

    response = client.post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "not-an-email"},
    )
    assert response.status_code == 422

    response = client.post("/api/invitations", json={"resource_id": "missing", "email": "b@x.com"})
    assert response.status_code == 404


@patch("carecal.email.service.get_email_service")
def test_decline_invitation(mock_email, login_as, db, owner, bob, appointment):
    """Declining marks the grant declined and the token stops working."""
    token = login_as(owner).post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "bob@example.com"},
    ).json()["token"]

    client = login_as(bob)
    response = client.post("/api/invitations/decline", json={"token": token})
    assert response.status_code == 200
    assert response.json()["status"] == "declined"

    response = client.post("/api/invitations/accept", json={"token": token})
    assert response.status_code == 404

    grant = db.query(AppointmentAssignee).one()
    assert grant.status == GrantStatus.DECLINED


def test_accept_requires_token(authenticated_client):
    """An empty token fails validation."""
    response = authenticated_client.post("/api/invitations/accept", json={"token": ""})
    assert response.status_code == 422


def test_accept_requires_authentication(client):
    """Redeeming without a session is rejected."""
    response = client.post("/api/invitations/accept", json={"token": "a" * 64})
    assert response.status_code == 401


@patch("carecal.email.service.get_email_service")
def test_list_invitations(mock_email, login_as, owner, bob, appointment):
    """Invitations show up for the inviter and for the invitee."""
    login_as(owner).post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "bob@example.com"},
    )
    login_as(owner).post("/api/invitations", json={"kind": "dashboard", "email": "bob@example.com"})

    data = login_as(bob).get("/api/invitations").json()
    assert len(data["appointment_invitations"]) == 1
    assert len(data["dashboard_invitations"]) == 1
    assert data["appointment_invitations"][0]["direction"] == "received"
    assert data["appointment_invitations"][0]["appointment_title"] == appointment.title

    data = login_as(owner).get("/api/invitations").json()
    assert data["appointment_invitations"][0]["direction"] == "sent"


@patch("carecal.email.service.get_email_service")
def test_preview_is_public(mock_email, login_as, client, owner, appointment):
    """The accept page can preview a pending token without a session."""
    from carecal.dependencies import get_current_user
    from carecal.main import app

    token = login_as(owner).post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "bob@example.com", "permission": "full"},
    ).json()["token"]
    app.dependency_overrides.pop(get_current_user, None)

    response = client.get("/api/invitations/preview", params={"token": token})
    assert response.status_code == 200
    data = response.json()
    assert data["kind"] == "appointment"
    assert data["permission"] == "full"
    assert data["resource_title"] == appointment.title
    assert data["inviter_email"] == owner.email

    response = client.get("/api/invitations/preview", params={"token": "nope"})
    assert response.status_code == 404


@patch("carecal.email.service.get_email_service")
def test_discard_invitation(mock_email, login_as, db, owner, bob, carol, appointment):
    """Only a party to the invitation can delete it."""
    invitation_id = login_as(owner).post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "bob@example.com"},
    ).json()["id"]

    response = login_as(carol).delete(f"/api/invitations/appointment/{invitation_id}")
    assert response.status_code == 403
    assert db.query(AppointmentAssignee).count() == 1

    response = login_as(bob).delete(f"/api/invitations/appointment/{invitation_id}")
    assert response.status_code == 204
    assert db.query(AppointmentAssignee).count() == 0

    response = login_as(bob).delete(f"/api/invitations/appointment/{invitation_id}")
    assert response.status_code == 404


@patch("carecal.email.service.get_email_service")
def test_resend_invitation(mock_email, login_as, owner, bob, appointment):
    """The inviter can resend a pending invitation."""
    invitation_id = login_as(owner).post(
        "/api/invitations",
        json={"resource_id": appointment.id, "email": "bob@example.com"},
    ).json()["id"]
    mock_email.reset_mock()

    response = login_as(owner).post(f"/api/invitations/appointment/{invitation_id}/resend")
    assert response.status_code == 202
    mock_email.return_value.send_invitation_email.assert_called_once()

    response = login_as(bob).post(f"/api/invitations/appointment/{invitation_id}/resend")
    assert response.status_code == 403
