"""Concurrent redemption of a single invitation token."""

import threading
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from carecal.db.models import Appointment, AppointmentAssignee, Base, GrantStatus, User
from carecal.exceptions import NotFound
from carecal.invitations.service import INVALID_TOKEN_MESSAGE, InvitationService

THREADS = 8


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a file database so each thread gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'redeem.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def test_concurrent_redeem_succeeds_exactly_once(file_sessions):
    """Of many simultaneous redemptions with distinct users, exactly one wins."""
    setup = file_sessions()
    owner = User(id=str(uuid4()), email="alice@example.com", is_email_verified=True)
    redeemers = [
        User(id=str(uuid4()), email=f"user{i}@example.com", is_email_verified=True)
        for i in range(THREADS)
    ]
    setup.add_all([owner, *redeemers])
    setup.flush()

    start = datetime(2026, 5, 4, 14, 0)
    appointment = Appointment(
        id=str(uuid4()),
        owner_id=owner.id,
        title="Physiotherapy",
        start=start,
        end=start + timedelta(minutes=45),
    )
    setup.add(appointment)
    setup.flush()

    grant = AppointmentAssignee(
        appointment_id=appointment.id,
        invited_email="shared@example.com",
        invited_by_id=owner.id,
        token=uuid4().hex + uuid4().hex,
    )
    setup.add(grant)
    setup.commit()
    token, grant_id = grant.token, grant.id
    user_ids = [u.id for u in redeemers]
    setup.close()

    barrier = threading.Barrier(THREADS)
    successes: list[str] = []
    failures: list[str] = []
    unexpected: list[BaseException] = []
    lock = threading.Lock()

    def redeem(user_id: str) -> None:
        session = file_sessions()
        try:
            service = InvitationService(session, user_id)
            barrier.wait()
            try:
                service.redeem(token)
            except NotFound as e:
                with lock:
                    failures.append(e.message)
            else:
                with lock:
                    successes.append(user_id)
        except BaseException as e:  # surfaced through the assertion below
            with lock:
                unexpected.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=redeem, args=(uid,)) for uid in user_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert unexpected == []
    assert len(successes) == 1
    assert failures == [INVALID_TOKEN_MESSAGE] * (THREADS - 1)

    check = file_sessions()
    try:
        stored = check.query(AppointmentAssignee).filter_by(id=grant_id).one()
        assert stored.status == GrantStatus.ACCEPTED
        assert stored.invited_user_id == successes[0]
    finally:
        check.close()
