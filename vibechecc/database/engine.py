"""
vibechecc.database.engine — Database Connection, Sessions & Transactions
=========================================================================

SQLAlchemy + psycopg2 is **synchronous**.  The FastAPI routes are plain
``def`` handlers, so Starlette already runs them on its thread pool.

Every economy entry point (boost, dampen, award, rating submission) runs
inside :func:`run_in_transaction`: one session, one transaction, committed
once at the end.  Transient contention (a unique-key race on a vote row,
a deadlock or serialization failure reported by the database) rolls the
whole unit back and retries it a bounded number of times.  Domain errors
propagate immediately.

Usage::

    from vibechecc.database.engine import create_db_engine, init_db, run_in_transaction

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    result = run_in_transaction(engine, _apply_vote, rating_id, voter_id, intent)
"""

from __future__ import annotations

import logging
import os
import random
import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import Concatenate, ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from vibechecc.database.models import Base
from vibechecc.errors import TransactionConflictError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
_BACKOFF_BASE_SECONDS = 0.05


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    Pool sizing:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Returns
    -------
    Engine
        A configured SQLAlchemy engine instance.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,        # Set True for SQL debugging
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,   # Reconnect stale connections automatically
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`vibechecc.database.models`.

    Safe to call on every startup.  After creating tables, seeds the
    default economy settings (idempotent).

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained as a safety net for dev/test
        environments where Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from vibechecc.database.seed import seed_default_settings

    seed_default_settings(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Usage::

        with get_session(engine) as session:
            session.add(Rating(vibe_id="v1", user_id="u1", emoji="🔥", value=5))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Retrying unit of work
# ---------------------------------------------------------------------------
def run_in_transaction(
    engine: Engine,
    func: Callable[Concatenate[Session, P], T],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Run ``func(session, *args, **kwargs)`` as one atomic transaction.

    The session is committed once *func* returns.  Any exception rolls the
    whole transaction back, so a failed call leaves no partial state.

    :class:`TransactionConflictError` and database ``OperationalError``
    (deadlock, serialization failure, lock timeout) are retried up to
    :data:`DEFAULT_ATTEMPTS` times with jittered backoff.  Anything else
    is re-raised on the first occurrence.

    Returns
    -------
    T
        Whatever *func* returns.  ORM instances in the result stay usable
        after commit (``expire_on_commit=False``).
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            with get_session(engine) as session:
                return func(session, *args, **kwargs)
        except (TransactionConflictError, OperationalError) as exc:
            if attempt >= DEFAULT_ATTEMPTS:
                logger.warning(
                    "%s gave up after %d attempts: %s",
                    getattr(func, "__name__", func), attempt, exc,
                )
                if isinstance(exc, TransactionConflictError):
                    raise
                raise TransactionConflictError(str(exc)) from exc
            delay = _BACKOFF_BASE_SECONDS * (2 ** (attempt - 1))
            delay += random.uniform(0, _BACKOFF_BASE_SECONDS)
            logger.info(
                "Transaction conflict in %s (attempt %d/%d), retrying in %.2fs",
                getattr(func, "__name__", func), attempt, DEFAULT_ATTEMPTS, delay,
            )
            time.sleep(delay)
