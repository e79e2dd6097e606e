"""
vibechecc.api.routes.points — Ledger, history and leaderboard endpoints
========================================================================
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from vibechecc.api.deps import get_current_user_id, get_session
from vibechecc.database.models import PointTransaction, UserPoints
from vibechecc.services import ledger_service, transaction_service

router = APIRouter(tags=["points"])


def _txn_dict(t: PointTransaction) -> dict:
    return {
        "id": t.id,
        "type": t.type,
        "action": t.action,
        "amount": t.amount,
        "balance_after": t.balance_after,
        "target_id": t.target_id,
        "from_user_id": t.from_user_id,
        "to_user_id": t.to_user_id,
        "metadata": t.metadata_,
        "timestamp": t.timestamp.isoformat() if t.timestamp else None,
    }


def _leader_dict(rank: int, p: UserPoints) -> dict:
    return {
        "rank": rank,
        "user_id": p.user_id,
        "total_points_earned": p.total_points_earned,
        "current_balance": p.current_balance,
        "level": p.level,
        "streak_days": p.streak_days,
    }


# ---------------------------------------------------------------------------
# GET /points/leaderboard
# ---------------------------------------------------------------------------
@router.get("/points/leaderboard")
def leaderboard(
    type: Literal["points", "level", "streak"] = "points",
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    rows = ledger_service.get_leaderboard(session, type, limit)
    return {"type": type, "entries": [_leader_dict(i, p) for i, p in enumerate(rows, 1)]}


# ---------------------------------------------------------------------------
# Caller's own ledger
# ---------------------------------------------------------------------------
@router.get("/points/me")
def my_points(
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    stats = ledger_service.get_user_points_stats(session, user_id)
    if stats is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No points ledger yet")
    return stats


@router.get("/points/me/transactions")
def my_transactions(
    limit: int = Query(50, ge=1, le=200),
    action: str | None = None,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    rows = transaction_service.get_transactions(session, user_id, limit=limit, action=action)
    return [_txn_dict(t) for t in rows]


@router.get("/points/me/history")
def my_history(
    days: int = Query(30, ge=1, le=365),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    rows = transaction_service.get_points_history(session, user_id, days)
    return [
        {
            "date": h.day.isoformat(),
            "points_earned": h.points_earned,
            "points_spent": h.points_spent,
            "net_change": h.net_change,
            "ending_balance": h.ending_balance,
            "activity_count": h.activity_count,
        }
        for h in rows
    ]


# ---------------------------------------------------------------------------
# GET /points/{user_id}
# ---------------------------------------------------------------------------
@router.get("/points/{user_id}")
def user_points(user_id: str, session: Session = Depends(get_session)):
    stats = ledger_service.get_user_points_stats(session, user_id)
    if stats is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No points ledger for user")
    return stats
