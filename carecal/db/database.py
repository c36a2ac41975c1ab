"""Engine, session factory and the request-scoped session dependency."""

from collections.abc import Generator
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from carecal.config import get_settings

settings = get_settings()


def engine_options(database_url: str, echo: bool = False) -> dict[str, Any]:
    """Keyword arguments for ``create_engine`` suited to the database backend.

    PostgreSQL gets a checked connection pool sized from settings. SQLite
    has no server-side pool and needs connections usable across threads,
    since FastAPI runs sync dependencies in a worker thread.

    Args:
        database_url: SQLAlchemy database URL.
        echo: Log every SQL statement.

    Returns:
        dict: Engine options.
    """
    options: dict[str, Any] = {"echo": echo}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_pre_ping"] = True
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


def build_engine(database_url: str, echo: bool = False) -> Engine:
    return create_engine(database_url, **engine_options(database_url, echo))


engine = build_engine(settings.database_url, echo=settings.debug)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session that is closed when the request finishes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables when running in debug mode.

    Deployed databases are managed by the Alembic migrations instead.
    """
    from carecal.db.models import Base

    if settings.debug:
        Base.metadata.create_all(bind=engine)
