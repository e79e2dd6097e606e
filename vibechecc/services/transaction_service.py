"""
vibechecc.services.transaction_service — Audit Log & Daily History
===================================================================

Every balance change is appended to ``point_transactions`` together with
the balance it produced.  Rows are never updated or deleted; a reversal
is a new row in the opposite direction.  Replaying a user's rows in
insertion order from zero reproduces every recorded ``balance_after``
and ends on the ledger's current balance (:func:`verify_ledger`).

The lazy daily reset calls :func:`snapshot_day` to roll a finished day
into one ``points_history`` row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from vibechecc.database.models import (
    PointsHistory,
    PointTransaction,
    TransactionAction,
    TransactionType,
    UserPoints,
)

logger = logging.getLogger(__name__)

# Actions counted as "activity" in the daily history rollup
ACTIVITY_ACTIONS: frozenset[str] = frozenset({
    TransactionAction.POST_VIBE.value,
    TransactionAction.WRITE_REVIEW.value,
})


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def record_transaction(
    session: Session,
    *,
    user_id: str,
    type: TransactionType,
    action: TransactionAction,
    amount: int,
    balance_after: int,
    target_id: str | None = None,
    from_user_id: str | None = None,
    to_user_id: str | None = None,
    multiplier: float | None = None,
    metadata: dict | None = None,
) -> PointTransaction:
    """Append one audit row.

    *amount* is signed from the owner's point of view and *balance_after*
    is the owner's balance once the change is applied.
    """
    txn = PointTransaction(
        user_id=user_id,
        type=type.value,
        action=action.value,
        target_id=target_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=amount,
        multiplier=multiplier,
        balance_after=balance_after,
        metadata_=metadata or None,
    )
    session.add(txn)
    session.flush()
    return txn


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_transactions(
    session: Session,
    user_id: str,
    *,
    limit: int = 50,
    action: TransactionAction | str | None = None,
) -> list[PointTransaction]:
    """Most recent transactions for *user_id*, newest first."""
    stmt = select(PointTransaction).where(PointTransaction.user_id == user_id)
    if action is not None:
        stmt = stmt.where(PointTransaction.action == str(action))
    stmt = stmt.order_by(PointTransaction.id.desc()).limit(limit)
    return list(session.scalars(stmt).all())


def get_points_history(
    session: Session,
    user_id: str,
    days: int = 30,
    *,
    today: date | None = None,
) -> list[PointsHistory]:
    """Daily aggregates for the last *days* days, oldest first."""
    today = today or datetime.now(UTC).date()
    start = today - timedelta(days=days)
    return list(session.scalars(
        select(PointsHistory)
        .where(PointsHistory.user_id == user_id, PointsHistory.day >= start)
        .order_by(PointsHistory.day)
    ).all())


# ---------------------------------------------------------------------------
# Replay / audit
# ---------------------------------------------------------------------------
@dataclass
class LedgerAudit:
    """Result of replaying one user's audit log."""

    user_id: str
    replayed_balance: int = 0
    ledger_balance: int | None = None
    transaction_count: int = 0
    mismatched_ids: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.mismatched_ids and self.ledger_balance == self.replayed_balance


def replay_balances(session: Session, user_id: str) -> list[tuple[PointTransaction, int]]:
    """Replay *user_id*'s transactions from zero.

    Returns ``(transaction, running_balance)`` pairs in insertion order.
    """
    rows = session.scalars(
        select(PointTransaction)
        .where(PointTransaction.user_id == user_id)
        .order_by(PointTransaction.id)
    ).all()
    running = 0
    replayed: list[tuple[PointTransaction, int]] = []
    for txn in rows:
        running += txn.amount
        replayed.append((txn, running))
    return replayed


def verify_ledger(session: Session, user_id: str) -> LedgerAudit:
    """Check the audit log of *user_id* against its ledger."""
    audit = LedgerAudit(user_id=user_id)
    for txn, running in replay_balances(session, user_id):
        audit.transaction_count += 1
        audit.replayed_balance = running
        if txn.balance_after != running:
            audit.mismatched_ids.append(txn.id)

    ledger = session.get(UserPoints, user_id)
    audit.ledger_balance = ledger.current_balance if ledger is not None else None

    if not audit.ok:
        logger.warning(
            "Ledger audit failed for %s: replayed=%d ledger=%s mismatches=%d",
            user_id, audit.replayed_balance, audit.ledger_balance,
            len(audit.mismatched_ids),
        )
    return audit


# ---------------------------------------------------------------------------
# Daily history rollup
# ---------------------------------------------------------------------------
def snapshot_day(session: Session, ledger: UserPoints, day: date) -> PointsHistory | None:
    """Roll *day*'s transactions for *ledger* into a ``points_history`` row.

    Called by the daily reset before counters are zeroed, so
    ``ledger.current_balance`` is still the day's ending balance.
    Returns ``None`` if the day was already snapshotted.
    """
    existing = session.scalar(
        select(PointsHistory).where(
            PointsHistory.user_id == ledger.user_id,
            PointsHistory.day == day,
        )
    )
    if existing is not None:
        return None

    start = datetime.combine(day, time.min, tzinfo=UTC)
    end = start + timedelta(days=1)
    rows = session.scalars(
        select(PointTransaction).where(
            PointTransaction.user_id == ledger.user_id,
            PointTransaction.timestamp >= start,
            PointTransaction.timestamp < end,
        )
    ).all()

    earned = sum(t.amount for t in rows if t.amount > 0)
    spent = sum(-t.amount for t in rows if t.amount < 0)
    history = PointsHistory(
        user_id=ledger.user_id,
        day=day,
        points_earned=earned,
        points_spent=spent,
        net_change=earned - spent,
        ending_balance=ledger.current_balance,
        activity_count=sum(1 for t in rows if t.action in ACTIVITY_ACTIONS),
    )
    session.add(history)
    session.flush()
    return history
