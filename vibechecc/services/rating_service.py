"""
vibechecc.services.rating_service — Rating Submission & Review Rewards
=======================================================================

Creates or updates a user's emoji rating on a vibe.  The vibe's author is
looked up in the vibe registry, never taken from the caller.  A first-time
rating pays the reviewer ``write_review`` points and, only when that award
goes through, the vibe author ``receive_review`` points and rating karma,
all in the same transaction.  Editing an existing rating pays nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vibechecc.database.engine import get_session, run_in_transaction
from vibechecc.database.models import Rating, TransactionAction
from vibechecc.engine.karma import KarmaAction
from vibechecc.errors import (
    InvalidRatingError,
    NotAuthenticatedError,
    SelfVoteError,
    TransactionConflictError,
)
from vibechecc.services import notification_service
from vibechecc.services.vibe_service import get_vibe_author
from vibechecc.services.ledger_service import (
    AwardResult,
    award_points,
    lock_ledgers,
    update_karma,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from vibechecc.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

MIN_RATING_VALUE = 1
MAX_RATING_VALUE = 5
POSITIVE_RATING_MIN = 4
NEGATIVE_RATING_MAX = 2


@dataclass
class RatingSubmission:
    rating_id: int
    created: bool
    author_id: str
    review_award: AwardResult | None = None
    author_award: AwardResult | None = None


def _rating_karma(value: int) -> KarmaAction | None:
    if value >= POSITIVE_RATING_MIN:
        return KarmaAction.POSITIVE_RATING
    if value <= NEGATIVE_RATING_MAX:
        return KarmaAction.NEGATIVE_RATING
    return None


def _submit(
    session: Session,
    vibe_id: str,
    user_id: str | None,
    emoji: str,
    value: int,
    review: str,
    cache: ConfigCache | None,
) -> RatingSubmission:
    if not user_id:
        raise NotAuthenticatedError("You must be logged in to rate a vibe")
    if not MIN_RATING_VALUE <= value <= MAX_RATING_VALUE:
        raise InvalidRatingError(
            f"Rating value must be between {MIN_RATING_VALUE} and {MAX_RATING_VALUE}"
        )
    if not emoji or not review or not review.strip():
        raise InvalidRatingError("A rating needs an emoji and a review")
    vibe_author_id = get_vibe_author(session, vibe_id)
    if vibe_author_id == user_id:
        raise SelfVoteError("rate", "vibe")

    rating = session.scalar(
        select(Rating).where(
            Rating.vibe_id == vibe_id,
            Rating.user_id == user_id,
            Rating.emoji == emoji,
        ).with_for_update()
    )
    if rating is not None:
        rating.value = value
        rating.review = review
        session.flush()
        return RatingSubmission(rating_id=rating.id, created=False, author_id=vibe_author_id)

    rating = Rating(vibe_id=vibe_id, user_id=user_id, emoji=emoji, value=value, review=review)
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(rating)
            session.flush()
    except IntegrityError:
        raise TransactionConflictError(
            f"Concurrent rating of vibe {vibe_id} by {user_id}"
        ) from None

    # Lock both ledgers in a stable order before either award touches one.
    ledgers = lock_ledgers(session, (user_id, vibe_author_id), cache, create=True)
    target = str(rating.id)
    review_award = award_points(
        session, user_id, TransactionAction.WRITE_REVIEW, cache,
        target_id=target, metadata={"vibe_id": vibe_id},
    )
    author_award = None
    # A refused review pays nobody.
    if review_award.success:
        author_award = award_points(
            session, vibe_author_id, TransactionAction.RECEIVE_REVIEW, cache,
            target_id=target, metadata={"vibe_id": vibe_id, "reviewer_user_id": user_id},
        )
        karma_action = _rating_karma(value)
        if karma_action is not None:
            update_karma(ledgers[vibe_author_id], karma_action, cache)

    logger.info("New rating %d on vibe %s by %s", rating.id, vibe_id, user_id)
    return RatingSubmission(
        rating_id=rating.id,
        created=True,
        author_id=vibe_author_id,
        review_award=review_award,
        author_award=author_award,
    )


def submit_rating(
    engine: Engine,
    *,
    vibe_id: str,
    user_id: str | None,
    emoji: str,
    value: int,
    review: str,
    cache: ConfigCache | None = None,
) -> RatingSubmission:
    """Create or update *user_id*'s *emoji* rating on *vibe_id*.

    Raises
    ------
    NotAuthenticatedError
        If *user_id* is empty.
    InvalidRatingError
        If *value* is outside 1–5 or emoji/review are missing.
    VibeNotFoundError
        If *vibe_id* was never registered.
    SelfVoteError
        If the user authored the vibe.
    """
    submission = run_in_transaction(
        engine, _submit, vibe_id, user_id, emoji, value, review, cache,
    )
    notification_service.notify(
        submission.author_id,
        "rating",
        {
            "rating_id": submission.rating_id,
            "vibe_id": vibe_id,
            "rater_id": user_id,
            "emoji": emoji,
            "value": value,
        },
    )
    return submission


def get_rating(engine: Engine, rating_id: int) -> Rating | None:
    with get_session(engine) as session:
        return session.get(Rating, rating_id)
