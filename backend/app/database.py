"""
Database engine and session management.

PostgreSQL in production, SQLite for local development and tests. The
database holds the question bank, staff registry, open assessment
sessions, the mail outbox and the append-only result histories.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./compliance_portal.db")

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _enable_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str) -> Engine:
    """
    Create an engine configured for the database type in url.

    PostgreSQL gets a connection pool. SQLite is opened for use from
    FastAPI's worker threads with foreign keys enforced; an in-memory
    SQLite database shares one connection so every session sees the
    same tables.
    """
    kwargs = {"echo": False}
    if url.startswith("postgresql"):
        kwargs.update(pool_size=10, max_overflow=20, pool_pre_ping=True)
    elif url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in IN_MEMORY_URLS:
            kwargs["poolclass"] = StaticPool

    new_engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(new_engine, "connect", _enable_sqlite_pragmas)
    return new_engine


def session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = build_engine(DATABASE_URL)
SessionLocal = session_factory(engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def get_db():
    """
    FastAPI dependency that provides a database session.

    The session is closed after the request even if the handler raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Engine = None):
    """
    Create all tables directly (SQLite development and tests).
    PostgreSQL deployments use the Alembic migrations instead.
    """
    Base.metadata.create_all(bind=bind or engine)
