from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base


def make_engine(url, echo=False):
    """
    Build the engine. An in-memory SQLite URL gets a single shared
    connection so every session sees the same database.
    """
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=echo,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=echo, future=True)


def make_session_factory(engine):
    # expire_on_commit=False: services hand back entities after the session closes
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_schema(engine):
    Base.metadata.create_all(engine)


@contextmanager
def transaction(session_factory):
    """
    One unit of work: commit on success, roll back on any error.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
