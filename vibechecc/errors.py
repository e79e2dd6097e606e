"""
vibechecc.errors — Domain Exceptions
=====================================

Every policy denial raised by the economy derives from
:class:`EconomyError`.  Each class carries a stable ``reason`` code that
the API layer returns to clients next to the human-readable message.

All of these are raised *before* any write is made; none of them is
retried.  :class:`TransactionConflictError` is the only transient error
and is retried by :func:`vibechecc.database.engine.run_in_transaction`.
"""

from __future__ import annotations


class EconomyError(Exception):
    """Base class for all vibechecc domain errors."""

    reason = "economy_error"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------
class AuthorizationError(EconomyError):
    reason = "unauthorized"


class NotAuthenticatedError(AuthorizationError):
    reason = "not_authenticated"

    def __init__(self, message: str = "You must be signed in to vote") -> None:
        super().__init__(message)


class SelfVoteError(AuthorizationError):
    reason = "self_vote"

    def __init__(self, intent: str = "boost", target: str = "rating") -> None:
        super().__init__(f"You cannot {intent} your own {target}")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
class NotFoundError(EconomyError):
    reason = "not_found"


class RatingNotFoundError(NotFoundError):
    reason = "rating_not_found"

    def __init__(self, rating_id: int) -> None:
        super().__init__(f"Rating {rating_id} not found")
        self.rating_id = rating_id


class VibeNotFoundError(NotFoundError):
    reason = "vibe_not_found"

    def __init__(self, vibe_id: str) -> None:
        super().__init__(f"Vibe {vibe_id} not found")
        self.vibe_id = vibe_id


class InvalidRatingError(EconomyError):
    reason = "invalid_rating"


# ---------------------------------------------------------------------------
# Economy policy
# ---------------------------------------------------------------------------
class InsufficientFundsError(EconomyError):
    reason = "insufficient_funds"

    def __init__(
        self,
        required: int,
        available: int,
        intent: str = "boost",
        target: str = "rating",
    ) -> None:
        super().__init__(
            f"Insufficient points. You need {required} VP to {intent} this {target}."
        )
        self.required = required
        self.available = available


class RateLimitedError(EconomyError):
    reason = "rate_limited"

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"You have reached your daily dampen limit ({limit} per day)."
        )
        self.limit = limit


class ProtectedTargetError(EconomyError):
    reason = "protected_target"

    def __init__(self) -> None:
        super().__init__(
            "This user is protected from dampening (new user or low balance)."
        )


class LedgerNotInitializedError(EconomyError):
    reason = "ledger_not_initialized"

    def __init__(self, user_id: str) -> None:
        super().__init__(
            f"Points ledger for user {user_id} is not initialized, please retry"
        )
        self.user_id = user_id


# ---------------------------------------------------------------------------
# Transient
# ---------------------------------------------------------------------------
class TransactionConflictError(EconomyError):
    """Concurrent writers collided; the whole transaction can be retried."""

    reason = "conflict"
