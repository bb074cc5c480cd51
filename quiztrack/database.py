"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine for the local
SQLite file that backs the progress store and provides small helpers used
by the application, scripts and tests. The file location comes from
`settings.DB_PATH`.
"""

from sqlmodel import SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from .config import settings


def make_engine(db_path=None):
    """Create an engine for `db_path`, or a shared in-memory database when None.

    The in-memory variant uses a single static connection so every session
    sees the same tables.
    """
    if db_path is None:
        return create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(f"sqlite:///{db_path}", echo=False, connect_args={"check_same_thread": False})


engine = make_engine(settings.DB_PATH)


def create_db_and_tables(target_engine=None):
    """Create database tables using SQLModel metadata.

    Idempotent; the key/value table is the only schema the store needs.
    """
    SQLModel.metadata.create_all(target_engine or engine)

