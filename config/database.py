from __future__ import annotations

import os
from urllib.parse import urlparse, parse_qsl, urlencode, urlunparse

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base
from sqlalchemy.pool import StaticPool

from config.settings import settings


def _normalize_db_url(url: str) -> str:
    """
    Normalize DATABASE_URL for SQLAlchemy + psycopg2 and add SSL for hosted DBs.

    - Convert:
        postgres://...     -> postgresql+psycopg2://...
        postgresql://...   -> postgresql+psycopg2://...
    - For common hosted providers, append sslmode=require if not present.
    - Leave sqlite URLs untouched.
    """
    if not url:
        return url

    if url.startswith("sqlite:"):
        return url

    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg2://", 1)

    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    hosted_domains = (
        "railway.app",
        "amazonaws.com",    # RDS
        "render.com",
        "gcp",
        "azure.com",
        "supabase.co",
        "neon.tech",
        "heroku.com",
        "herokuapp.com",
    )

    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    if any(d in host for d in hosted_domains) and "sslmode" not in query:
        query["sslmode"] = "require"
        url = urlunparse(parsed._replace(query=urlencode(query)))

    return url


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or url.startswith("sqlite+pysqlite:///:memory:")


def _engine_kwargs(url: str) -> dict:
    if _is_memory_sqlite(url):
        # One shared connection, otherwise every session sees its own empty database
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    if url.startswith("sqlite:"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


# Read env with safe local fallback
DB_URL = settings.DATABASE_URL or "sqlite:///instance/local.db"
DB_URL = _normalize_db_url(DB_URL)

# If using a SQLite file locally, ensure the folder exists (no-op in prod)
if DB_URL.startswith("sqlite:///instance/"):
    os.makedirs("instance", exist_ok=True)

# Create engine/session factory (no DB I/O at import time)
engine = create_engine(DB_URL, future=True, **_engine_kwargs(DB_URL))
SessionLocal = scoped_session(
    sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
)
Base = declarative_base()


def init_db() -> None:
    """Create missing tables for every imported model."""
    import models.user  # noqa: F401
    import models.property  # noqa: F401
    import models.message  # noqa: F401
    import models.notification  # noqa: F401

    Base.metadata.create_all(engine)


def healthcheck() -> None:
    """
    Lightweight DB ping; safe to call from a debug route or one-off task.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
