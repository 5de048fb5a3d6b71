"""Session factories and transaction helpers.

Three ways to get a session:

- get_db(): FastAPI dependency, one session per request
- open_session(): context manager for work outside a request (WebSocket
  frames, detached push fan-out, the boost expiration job)
- a sessionmaker from create_session_factory(), for tests and scripts

Sessions never expire on commit. Services return pydantic models built
from rows after commit, and detached tasks read them after the request
session is gone.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from kivendi.db.engine import get_engine

_session_factory: sessionmaker[Session] | None = None


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
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


def set_session_factory(factory: sessionmaker[Session] | None) -> None:
    """Point the application at another database (tests, seed script).

    None restores lazy creation from DATABASE_URL.
    """
    global _session_factory
    _session_factory = factory


@contextmanager
def open_session() -> Generator[Session, None, None]:
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    with open_session() as db:
        yield db


@contextmanager
def transaction(db: Session) -> Generator[None, None, None]:
    """Commit the block's writes together, or roll all of them back.

    Usage:
        with transaction(db):
            db.delete(ad)
            db.add(notification)
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise
