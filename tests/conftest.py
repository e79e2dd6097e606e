"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of vibechecc.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime, timedelta  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from vibechecc.database.models import (  # noqa: E402
    Base,
    Rating,
    TransactionAction,
    TransactionType,
    UserPoints,
    Vibe,
)
from vibechecc.engine.cache import ConfigCache  # noqa: E402
from vibechecc.services.transaction_service import record_transaction  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all vibechecc tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so every session shares the same in-memory database.

    pysqlite's own transaction handling is switched off and SQLAlchemy
    emits BEGIN itself, so SAVEPOINTs nest inside the outer transaction
    the way they do on PostgreSQL.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def cache():
    """A mock ConfigCache that always answers with the caller's default."""
    mock_cache = MagicMock(spec=ConfigCache)
    mock_cache.get_int.side_effect = lambda key, default=0: default
    mock_cache.get_float.side_effect = lambda key, default=0.0: default
    mock_cache.get_setting.side_effect = lambda key, default=None: default
    return mock_cache


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------
def make_ledger(
    engine: Engine,
    user_id: str,
    *,
    balance: int = 200,
    protected: int = 50,
    age_days: float = 30,
    **fields,
) -> None:
    """Insert a ledger with an opening transaction so its audit log replays.

    Defaults describe an established user who can be dampened
    (30 days old, 150 points above the protected floor).
    """
    now = datetime.now(UTC)
    values = {
        "current_balance": balance,
        "total_points_earned": 0,
        "protected_points": protected,
        "last_reset_date": now.date(),
        "level": 1,
        "multiplier": 1.0,
        "created_at": now - timedelta(days=age_days),
    }
    values.update(fields)
    with Session(engine) as session:
        session.add(UserPoints(user_id=user_id, **values))
        session.flush()
        record_transaction(
            session,
            user_id=user_id,
            type=TransactionType.EARNED,
            action=TransactionAction.STARTER_BONUS,
            amount=balance,
            balance_after=balance,
        )
        session.commit()


def make_rating(
    engine: Engine,
    author_id: str = "author",
    *,
    vibe_id: str = "vibe-1",
    emoji: str = "🔥",
    value: int = 4,
) -> int:
    """Insert a rating written by *author_id* and return its id."""
    with Session(engine) as session:
        rating = Rating(
            vibe_id=vibe_id,
            user_id=author_id,
            emoji=emoji,
            value=value,
            review="Immaculate vibes",
        )
        session.add(rating)
        session.commit()
        return rating.id


def make_vibe(engine: Engine, vibe_id: str = "vibe-1", author_id: str = "author", **fields) -> str:
    """Register *vibe_id* as created by *author_id* without paying a reward."""
    with Session(engine) as session:
        session.add(Vibe(id=vibe_id, created_by_id=author_id, **fields))
        session.commit()
    return vibe_id


def load_ledger(engine: Engine, user_id: str) -> UserPoints | None:
    with Session(engine, expire_on_commit=False) as session:
        return session.get(UserPoints, user_id)


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
def make_token(sub: str = "user-1") -> str:
    """Create a signed bearer JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from vibechecc.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def client(db_engine: Engine):
    """FastAPI TestClient wired to the in-memory engine.

    The lifespan hook is not run (no ``with`` block), so no real
    database URL is needed.
    """
    from fastapi.testclient import TestClient

    from vibechecc.api import deps
    from vibechecc.api.main import app
    from vibechecc.api.routes import points, ratings, vibes, votes
    from vibechecc.database.seed import seed_default_settings

    seed_default_settings(db_engine)

    # Route modules keep the function objects they imported, even if
    # deps is reloaded by another test.
    for provider in {deps.get_engine, ratings.get_engine, votes.get_engine, vibes.get_engine}:
        app.dependency_overrides[provider] = lambda: db_engine

    def _session():
        with Session(db_engine) as session:
            yield session

    for provider in {deps.get_session, points.get_session}:
        app.dependency_overrides[provider] = _session

    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
