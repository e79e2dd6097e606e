"""
vibechecc.services.score_service — Rating Vote Aggregates
==========================================================

The only writer of ``ratings.boost_count``, ``dampen_count`` and
``net_score``.  Counts are always recomputed from the full vote set,
never incremented, so running :func:`recompute` twice (or concurrently
for two different voters) converges on the same values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from vibechecc.database.models import Rating, RatingVote, VoteType
from vibechecc.errors import RatingNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VoteScore:
    net_score: int = 0
    boost_count: int = 0
    dampen_count: int = 0


def count_votes(session: Session, rating_id: int) -> VoteScore:
    """Count boosts and dampens on *rating_id* straight from the vote table."""
    rows = session.execute(
        select(RatingVote.vote_type, func.count().label("cnt"))
        .where(RatingVote.rating_id == rating_id)
        .group_by(RatingVote.vote_type)
    ).all()
    counts = {row.vote_type: row.cnt for row in rows}
    boosts = counts.get(VoteType.BOOST.value, 0)
    dampens = counts.get(VoteType.DAMPEN.value, 0)
    return VoteScore(net_score=boosts - dampens, boost_count=boosts, dampen_count=dampens)


def recompute(session: Session, rating_id: int) -> VoteScore:
    """Refresh the stored aggregates on *rating_id* and return them.

    Raises
    ------
    RatingNotFoundError
        If the rating no longer exists.
    """
    rating = session.get(Rating, rating_id)
    if rating is None:
        raise RatingNotFoundError(rating_id)

    session.flush()
    score = count_votes(session, rating_id)
    rating.boost_count = score.boost_count
    rating.dampen_count = score.dampen_count
    rating.net_score = score.net_score
    logger.debug(
        "Rating %d aggregates: +%d -%d = %d",
        rating_id, score.boost_count, score.dampen_count, score.net_score,
    )
    return score
