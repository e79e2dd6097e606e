"""
vibechecc.api.routes.vibes — Paid vibe boost / dampen endpoints
================================================================
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from vibechecc.api.deps import get_cache, get_current_user_id, get_engine
from vibechecc.engine.cache import ConfigCache
from vibechecc.services import vibe_service

router = APIRouter(tags=["vibes"])


def _public(result) -> dict:
    body = asdict(result)
    body.pop("creator_id", None)
    return body


@router.get("/vibes/{vibe_id}/boost-cost")
def vibe_boost_cost(
    vibe_id: str,
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    return asdict(vibe_service.get_boost_cost(engine, vibe_id, cache))


@router.post("/vibes/{vibe_id}/boost")
def boost_vibe(
    vibe_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """Spend points to push a vibe up; part of the cost goes to its creator."""
    return _public(vibe_service.boost_vibe(engine, vibe_id, user_id, cache))


@router.post("/vibes/{vibe_id}/dampen")
def dampen_vibe(
    vibe_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """Spend points to push a vibe down; its creator loses a dampen penalty."""
    return _public(vibe_service.dampen_vibe(engine, vibe_id, user_id, cache))
