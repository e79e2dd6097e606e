"""
vibechecc.api.routes.ratings — Rating submission
=================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from vibechecc.api.deps import get_cache, get_current_user_id, get_engine
from vibechecc.engine.cache import ConfigCache
from vibechecc.services import rating_service

router = APIRouter(tags=["ratings"])


class RatingCreate(BaseModel):
    vibe_id: str
    emoji: str = Field(min_length=1, max_length=32)
    value: int
    review: str


@router.post("/ratings", status_code=status.HTTP_201_CREATED)
def submit_rating(
    body: RatingCreate,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """Create (or update) the caller's emoji rating on a vibe."""
    result = rating_service.submit_rating(
        engine,
        vibe_id=body.vibe_id,
        user_id=user_id,
        emoji=body.emoji,
        value=body.value,
        review=body.review,
        cache=cache,
    )
    return {
        "rating_id": result.rating_id,
        "created": result.created,
        "points_awarded": result.review_award.points_awarded if result.review_award else 0,
    }


@router.get("/ratings/{rating_id}")
def get_rating(rating_id: int, engine: Engine = Depends(get_engine)):
    rating = rating_service.get_rating(engine, rating_id)
    if rating is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Rating not found")
    return {
        "id": rating.id,
        "vibe_id": rating.vibe_id,
        "user_id": rating.user_id,
        "emoji": rating.emoji,
        "value": rating.value,
        "review": rating.review,
        "boost_count": rating.boost_count,
        "dampen_count": rating.dampen_count,
        "net_score": rating.net_score,
        "created_at": rating.created_at.isoformat() if rating.created_at else None,
    }
