"""SQLAlchemy engine and sessions for the awareness impact tables.

HTTP handlers get one session per request through `get_db_session`; the CLI
recompute job opens its own through `session_scope`. SQLite URLs (the default
file database and the in-memory test database) disable the same-thread check
so sessions can cross FastAPI worker threads.
"""

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings

Base = declarative_base()

settings = get_settings()

engine_args = {}
if settings.database_url.startswith("sqlite"):
    engine_args["connect_args"] = {"check_same_thread": False}

engine = create_engine(settings.database_url, echo=settings.sql_echo, future=True, **engine_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_db_session() -> Generator[Session, None, None]:
    """Yield a request-scoped database session."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for jobs that run outside a request (CLI, schedulers)."""

    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Initialize service-owned tables."""

    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
