"""
vibechecc.api.routes.votes — Boost / dampen endpoints
======================================================
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from vibechecc.api.deps import get_cache, get_current_user_id, get_engine, get_optional_user_id
from vibechecc.engine.cache import ConfigCache
from vibechecc.services import vote_service
from vibechecc.services.score_service import VoteScore
from vibechecc.services.vote_service import VoterStatus

router = APIRouter(tags=["votes"])

MAX_BULK_IDS = 100


class BulkRatingIds(BaseModel):
    rating_ids: list[int] = Field(default_factory=list, max_length=MAX_BULK_IDS)


def _status_dict(s: VoterStatus) -> dict:
    return {"vote_type": s.vote_type, "boosted": s.boosted, "dampened": s.dampened}


def _score_dict(s: VoteScore) -> dict:
    return asdict(s)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
@router.post("/ratings/{rating_id}/boost")
def boost_rating(
    rating_id: int,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """Boost a rating, or un-boost it if already boosted."""
    return asdict(vote_service.boost(engine, rating_id, user_id, cache))


@router.post("/ratings/{rating_id}/dampen")
def dampen_rating(
    rating_id: int,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """Dampen a rating, or un-dampen it if already dampened."""
    return asdict(vote_service.dampen(engine, rating_id, user_id, cache))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
@router.get("/ratings/{rating_id}/score")
def rating_score(rating_id: int, engine: Engine = Depends(get_engine)):
    return _score_dict(vote_service.get_vote_score(engine, rating_id))


@router.get("/ratings/{rating_id}/vote-status")
def rating_vote_status(
    rating_id: int,
    user_id: str | None = Depends(get_optional_user_id),
    engine: Engine = Depends(get_engine),
):
    return _status_dict(vote_service.get_voter_status(engine, rating_id, user_id))


@router.post("/ratings/scores")
def bulk_scores(body: BulkRatingIds, engine: Engine = Depends(get_engine)):
    scores = vote_service.get_bulk_vote_scores(engine, body.rating_ids)
    return {str(rid): _score_dict(s) for rid, s in scores.items()}


@router.post("/ratings/vote-statuses")
def bulk_vote_statuses(
    body: BulkRatingIds,
    user_id: str | None = Depends(get_optional_user_id),
    engine: Engine = Depends(get_engine),
):
    statuses = vote_service.get_bulk_voter_statuses(engine, body.rating_ids, user_id)
    return {str(rid): _status_dict(s) for rid, s in statuses.items()}
