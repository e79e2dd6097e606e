"""
tests/test_cache.py — ConfigCache Tests
========================================

Loads the seeded ``settings`` table into the cache and checks the typed
accessors and re-loading after an edit.
"""

from __future__ import annotations

import json

import pytest
from sqlalchemy.orm import Session

from vibechecc.database.models import Setting
from vibechecc.database.seed import seed_default_settings
from vibechecc.engine.cache import ConfigCache


@pytest.fixture
def seeded_cache(db_engine) -> ConfigCache:
    seed_default_settings(db_engine)
    cache = ConfigCache(db_engine)
    cache.load_all()
    return cache


def _set(engine, key: str, value_json: str) -> None:
    with Session(engine) as session:
        row = session.get(Setting, key)
        if row is None:
            session.add(Setting(key=key, value_json=value_json, category="test"))
        else:
            row.value_json = value_json
        session.commit()


class TestLoading:
    def test_empty_until_load_all(self, db_engine):
        seed_default_settings(db_engine)
        cache = ConfigCache(db_engine)
        assert cache.get_int("limits.max_dampen_per_day", 7) == 7

    def test_seeded_defaults(self, seeded_cache):
        assert seeded_cache.get_int("limits.max_dampen_per_day") == 10
        assert seeded_cache.get_int("economy.starter_balance") == 50
        assert seeded_cache.get_float("transfer.level_gap_bonus") == pytest.approx(0.1)
        assert seeded_cache.get_float("karma.negative_rating") == pytest.approx(-0.5)
        assert seeded_cache.get_int("content.boost_base_cost") == 5
        assert seeded_cache.get_float("content.creator_share") == pytest.approx(0.5)

    def test_load_all_again_picks_up_edits(self, db_engine, seeded_cache):
        _set(db_engine, "limits.max_dampen_per_day", json.dumps(3))
        assert seeded_cache.get_int("limits.max_dampen_per_day") == 10
        seeded_cache.load_all()
        assert seeded_cache.get_int("limits.max_dampen_per_day") == 3


class TestTypedAccessors:
    def test_missing_key_returns_default(self, seeded_cache):
        assert seeded_cache.get_setting("nope") is None
        assert seeded_cache.get_int("nope", 4) == 4
        assert seeded_cache.get_float("nope", 1.5) == 1.5

    def test_unparseable_json_kept_as_string(self, db_engine, seeded_cache):
        _set(db_engine, "economy.starter_balance", "not json")
        seeded_cache.load_all()
        assert seeded_cache.get_setting("economy.starter_balance") == "not json"
        assert seeded_cache.get_int("economy.starter_balance", 50) == 50

    def test_numeric_strings_coerced(self, db_engine, seeded_cache):
        _set(db_engine, "transfer.boost_amount", json.dumps("4"))
        seeded_cache.load_all()
        assert seeded_cache.get_int("transfer.boost_amount") == 4
