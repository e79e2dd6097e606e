"""
tests/test_database.py — Session, Transaction & Seeding Tests
==============================================================
"""

from __future__ import annotations

import json

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import load_ledger
from vibechecc.database import engine as db
from vibechecc.database.models import Setting, UserPoints
from vibechecc.database.seed import DEFAULT_SETTINGS, seed_default_settings
from vibechecc.errors import RateLimitedError, TransactionConflictError
from vibechecc.services.ledger_service import ensure_ledger


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr("vibechecc.database.engine.time.sleep", lambda seconds: None)


class TestCreateEngine:
    def test_requires_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL is not set"):
            db.create_db_engine()


class TestRunInTransaction:
    def test_commits_on_success(self, db_engine):
        db.run_in_transaction(db_engine, ensure_ledger, "alice")
        assert load_ledger(db_engine, "alice").current_balance == 50

    def test_rolls_back_on_domain_error(self, db_engine):
        def _create_then_fail(session):
            ensure_ledger(session, "alice")
            raise RateLimitedError(10)

        with pytest.raises(RateLimitedError):
            db.run_in_transaction(db_engine, _create_then_fail)
        assert load_ledger(db_engine, "alice") is None

    def test_domain_errors_are_not_retried(self, db_engine):
        calls = []

        def _fail(session):
            calls.append(1)
            raise RateLimitedError(10)

        with pytest.raises(RateLimitedError):
            db.run_in_transaction(db_engine, _fail)
        assert len(calls) == 1

    def test_conflict_is_retried(self, db_engine):
        calls = []

        def _flaky(session, user_id):
            calls.append(user_id)
            ensure_ledger(session, user_id)
            if len(calls) == 1:
                raise TransactionConflictError("lost the race")
            return "done"

        assert db.run_in_transaction(db_engine, _flaky, "alice") == "done"
        assert calls == ["alice", "alice"]
        with Session(db_engine) as session:
            assert len(session.scalars(select(UserPoints)).all()) == 1

    def test_gives_up_after_bounded_attempts(self, db_engine):
        calls = []

        def _always_conflicts(session):
            calls.append(1)
            raise TransactionConflictError("still racing")

        with pytest.raises(TransactionConflictError):
            db.run_in_transaction(db_engine, _always_conflicts)
        assert len(calls) == db.DEFAULT_ATTEMPTS

    def test_operational_error_becomes_conflict(self, db_engine):
        def _deadlock(session):
            raise OperationalError("UPDATE user_points", {}, Exception("deadlock detected"))

        with pytest.raises(TransactionConflictError, match="deadlock detected"):
            db.run_in_transaction(db_engine, _deadlock)


class TestSeeding:
    def test_init_db_seeds_settings(self, db_engine):
        db.init_db(db_engine)
        with Session(db_engine) as session:
            keys = set(session.scalars(select(Setting.key)).all())
        assert keys == set(DEFAULT_SETTINGS)
        assert "karma.helpful_boost" in keys
        assert "limits.max_dampen_per_day" in keys

    def test_seed_does_not_overwrite_edits(self, db_engine):
        seed_default_settings(db_engine)
        with Session(db_engine) as session:
            session.get(Setting, "limits.max_dampen_per_day").value_json = json.dumps(3)
            session.commit()

        seed_default_settings(db_engine)
        with Session(db_engine) as session:
            assert json.loads(session.get(Setting, "limits.max_dampen_per_day").value_json) == 3
