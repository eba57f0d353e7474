"""SQLAlchemy table definitions and engine helpers for profile persistence.

One row per hostname in ``browser_profiles``; cookies and web storage are
JSON columns so a profile is always read and written as a unit.
"""

from __future__ import annotations

from pathlib import Path

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
TIMESTAMP = sa.DateTime(timezone=True)

METADATA = sa.MetaData()

# ---------------------------------------------------------------------------
# browser_profiles — persisted identity state, one row per hostname
# ---------------------------------------------------------------------------

browser_profiles = sa.Table(
    "browser_profiles",
    METADATA,
    sa.Column("host_key", sa.String(length=255), primary_key=True),
    sa.Column("user_agent", sa.Text(), nullable=False, server_default=""),
    sa.Column("cookies", JSON_TYPE, nullable=False),
    sa.Column("local_storage", JSON_TYPE, nullable=False),
    sa.Column("session_storage", JSON_TYPE, nullable=False),
    sa.Column("created_at", TIMESTAMP, nullable=False),
    sa.Column("last_used_at", TIMESTAMP, nullable=False),
)
sa.Index("idx_browser_profiles_last_used_at", browser_profiles.c.last_used_at)


def build_engine(db_url: str, *, echo: bool = False) -> sa.Engine:
    """Create a SQLAlchemy engine for the profile database.

    SQLite file URLs get their parent directory created; ``sqlite://`` and
    ``sqlite:///:memory:`` share one connection so the schema survives.
    """
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        return sa.create_engine(
            "sqlite://",
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if db_url.startswith("sqlite:///"):
        Path(db_url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
        return sa.create_engine(
            db_url,
            echo=echo,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return sa.create_engine(db_url, echo=echo, pool_pre_ping=True)


def build_session_factory(db_url: str) -> sessionmaker:
    """Return a ``sessionmaker`` bound to the profile engine."""
    engine = build_engine(db_url)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


def dialect_insert(session: Session, table: sa.Table) -> sa.Insert:
    """Return a dialect-aware INSERT that supports ``on_conflict_do_*``.

    Picks the correct dialect (SQLite or PostgreSQL) based on the session's
    bound engine.
    """
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert(table)
