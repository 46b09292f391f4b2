"""Sessions and transactions.

Request handlers get a session through the ``get_db`` dependency. Work that
runs outside a request (the auth bootstrap callback, Celery tasks) opens one
with ``session_scope``. Services never commit directly; each mutation runs
inside ``transaction`` so a failure leaves the session clean.
"""

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from freefor.db.engine import get_engine

_session_factory: sessionmaker[Session] | None = None


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Sessionmaker for ``engine`` (the process-wide engine by default).

    Objects stay usable after commit so services can build response models
    from them without a second round trip.
    """
    return sessionmaker(
        bind=engine if engine is not None else get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """A session that is closed on exit, for work outside a request."""
    db = (factory or get_session_factory())()
    try:
        yield db
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: one session per request."""
    with session_scope() as db:
        yield db


@contextmanager
def transaction(db: Session) -> Iterator[None]:
    """Commit on success, roll back and re-raise on exception.

    Usage:
        with transaction(db):
            db.add(entry)
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise
