"""Database configuration and session management for SQLite.

The per-user calendar settings and the per-issue event references live in
two small tables. SQLite runs in WAL mode so notification handlers can
write while the configuration endpoints read.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from issue_calendar.core.config import settings

# Handlers may run on threadpool workers; the default check_same_thread=True
# would reject a connection created on another thread.
connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, so they must be set each time a
    new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
