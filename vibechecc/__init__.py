"""
vibechecc — Points Economy for a Social Vibe-Rating Network
=============================================================
Users post vibes, other users rate them with an emoji, a score and a
review, and everybody can boost or dampen those ratings.  This package is
the economy behind that: a per-user points ledger, the boost/dampen vote
state machine, point transfers between users, daily limits, protection
rules, and an append-only audit log of every balance change.

Package layout::

    vibechecc/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Economy defaults + level/multiplier formulas
    ├── errors.py          # Domain exception hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, sessions, retrying transactions
    │   ├── models.py      # ORM models (ratings, votes, ledgers, audit log)
    │   └── seed.py        # Default economy settings
    ├── engine/
    │   ├── cache.py       # In-memory settings cache
    │   ├── transfer.py    # Boost amount / dampen penalty / protection maths
    │   ├── votes.py       # Vote state machine transition table
    │   └── karma.py       # Karma deltas
    ├── services/
    │   ├── ledger_service.py       # Ledger creation, daily reset, earning
    │   ├── transaction_service.py  # Audit log writes, replay, history
    │   ├── transfer_service.py     # Point transfers between ledgers
    │   ├── score_service.py        # Rating vote aggregates
    │   ├── vote_service.py         # boost / dampen entry points + queries
    │   ├── rating_service.py       # Rating submission + review rewards
    │   └── notification_service.py # Fire-and-forget notifications
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT identity + DB dependencies
        └── routes/        # Vote + points REST endpoints
"""

__version__ = "0.1.0"
