from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .models import Base


def make_session_factory(database_uri, echo=False):
    """
    Build the engine, create missing tables and return a session factory.
    """
    connect_args = {}
    if database_uri.startswith("sqlite"):
        # Request threads and the scheduler thread share the engine
        connect_args["check_same_thread"] = False

    engine = create_engine(
        database_uri, echo=echo, future=True, connect_args=connect_args
    )
    Base.metadata.create_all(engine)
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )


@contextmanager
def session_scope(session_factory):
    """Yield a session; commit on success, roll back on error, always close."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
