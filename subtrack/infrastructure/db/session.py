"""
Database engine and sessions (SQLAlchemy)

PostgreSQL is the production backend; SQLite is accepted for local runs and
tests. Timestamps are pinned to UTC on both: PostgreSQL sessions are opened
with ``timezone=UTC`` and SQLite values are made aware by ``UtcDateTime``.
"""
import psycopg
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from subtrack.config import get_settings


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all ORM models
    """
    pass


_engine = None
_SessionLocal = None


def build_engine(url: str) -> Engine:
    """
    Engine with per-dialect options.

    In-memory SQLite gets a single shared connection, otherwise every
    pooled connection would see its own empty database.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        pool_pre_ping=True,
        connect_args={"options": "-c timezone=UTC"},
    )


def get_engine() -> Engine:
    """Get or create the process-wide engine"""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().get_sqlalchemy_url())
    return _engine


def get_session_factory():
    """Get or create the process-wide session factory"""
    global _SessionLocal
    if _SessionLocal is None:
        # use cases flush explicitly before reading back generated ids
        _SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)
    return _SessionLocal


def get_db() -> Session:
    """FastAPI dependency: one session per request, always closed"""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def check_db_connection() -> None:
    """
    Readiness check.

    PostgreSQL is probed with a raw psycopg connection so a broken pool
    cannot mask an unreachable server; other backends go through the engine.

    Raises:
        psycopg.OperationalError / sqlalchemy.exc.OperationalError: database unreachable
    """
    settings = get_settings()
    if make_url(settings.get_sqlalchemy_url()).get_backend_name() == "postgresql":
        with psycopg.connect(settings.DATABASE_URL, connect_timeout=3) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return

    with get_engine().connect() as conn:
        conn.execute(text("SELECT 1"))
