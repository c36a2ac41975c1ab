"""Database module."""

from carecal.db.database import SessionLocal, engine, get_db, init_db
from carecal.db.models import (
    Activity,
    Appointment,
    AppointmentAssignee,
    Base,
    DashboardAccess,
    User,
)

__all__ = [
    "SessionLocal",
    "engine",
    "get_db",
    "init_db",
    "Base",
    "User",
    "Appointment",
    "Activity",
    "AppointmentAssignee",
    "DashboardAccess",
]
