"""
vibechecc.services.transfer_service — Point Transfers Between Ledgers
======================================================================

Moves points between two existing ledgers and writes the matching audit
rows.  Four kinds of transfer exist:

=================  ===================  ==================================
kind               balance effect       audit rows
=================  ===================  ==================================
``boost``          payer −n, author +n  ``transfer_boost`` / ``receive_boost``
``reverse_boost``  author −n, payer +n  ``reverse_boost`` / ``reclaim_boost``
``dampen``         author −min(n, eff)  ``transfer_dampen`` (0) / ``receive_dampen``
``restore``        author +n            ``restore_dampen``
=================  ===================  ==================================

A failed transfer (payer short of points) returns ``success=False`` and
touches nothing.  A dampen against a ledger with nothing above its
protected floor is a successful no-op that moves zero points.
Transfers never count as earnings, so they don't move
``total_points_earned`` or levels.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from vibechecc.database.models import TransactionAction, TransactionType, UserPoints
from vibechecc.engine.transfer import effective_balance
from vibechecc.services.ledger_service import adjust_balance, lock_ledgers
from vibechecc.services.transaction_service import record_transaction

if TYPE_CHECKING:
    from vibechecc.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


class TransferKind(enum.StrEnum):
    BOOST = "boost"
    REVERSE_BOOST = "reverse_boost"
    DAMPEN = "dampen"
    RESTORE = "restore"


@dataclass
class TransferResult:
    """Outcome of one transfer; balances are post-transfer."""

    success: bool
    amount_moved: int = 0
    from_balance: int = 0
    to_balance: int = 0
    error: str | None = None


def transfer(
    session: Session,
    from_user_id: str,
    to_user_id: str,
    amount: int,
    kind: TransferKind,
    *,
    target_id: str | None = None,
    metadata: dict | None = None,
    cache: ConfigCache | None = None,
) -> TransferResult:
    """Move *amount* points according to *kind*.

    For ``boost`` / ``reverse_boost`` *from_user_id* pays and *to_user_id*
    receives.  For ``dampen`` / ``restore`` *from_user_id* is the acting
    voter and *to_user_id* is the author whose balance changes.

    Parameters
    ----------
    session:
        Open session; the caller owns the transaction.
    amount:
        Non-negative number of points.  Zero is a successful no-op.

    Raises
    ------
    LedgerNotInitializedError
        If either ledger does not exist.
    ValueError
        On a negative amount or a transfer to oneself.
    """
    if amount < 0:
        raise ValueError(f"Transfer amount must be non-negative, got {amount}")
    if from_user_id == to_user_id:
        raise ValueError("Cannot transfer points to the same ledger")

    ledgers = lock_ledgers(session, (from_user_id, to_user_id), cache)
    payer = ledgers[from_user_id]
    receiver = ledgers[to_user_id]

    if amount == 0:
        return _result(True, 0, payer, receiver)

    meta = {"transfer_type": str(kind), **(metadata or {})}

    if kind in (TransferKind.BOOST, TransferKind.REVERSE_BOOST):
        if payer.current_balance < amount:
            logger.warning(
                "%s transfer %s → %s refused: balance %d < %d",
                kind, from_user_id, to_user_id, payer.current_balance, amount,
            )
            return _result(False, 0, payer, receiver, "insufficient_funds")

        if kind == TransferKind.BOOST:
            txn_type = TransactionType.TRANSFER
            out_action, in_action = TransactionAction.TRANSFER_BOOST, TransactionAction.RECEIVE_BOOST
        else:
            txn_type = TransactionType.REVERSAL
            out_action, in_action = TransactionAction.REVERSE_BOOST, TransactionAction.RECLAIM_BOOST

        payer_after = adjust_balance(payer, -amount)
        receiver_after = adjust_balance(receiver, amount)
        _record_pair(
            session, payer, receiver, txn_type,
            (out_action, -amount, payer_after),
            (in_action, amount, receiver_after),
            target_id, meta,
        )
        return _result(True, amount, payer, receiver)

    if kind == TransferKind.DAMPEN:
        penalty = min(amount, effective_balance(receiver.current_balance, receiver.protected_points))
        if penalty <= 0:
            return _result(True, 0, payer, receiver)
        receiver_after = adjust_balance(receiver, -penalty)
        meta["penalty_amount"] = penalty
        _record_pair(
            session, payer, receiver, TransactionType.TRANSFER,
            (TransactionAction.TRANSFER_DAMPEN, 0, payer.current_balance),
            (TransactionAction.RECEIVE_DAMPEN, -penalty, receiver_after),
            target_id, meta,
        )
        return _result(True, penalty, payer, receiver)

    # RESTORE: credit only, the voter's balance is untouched
    receiver_after = adjust_balance(receiver, amount)
    record_transaction(
        session,
        user_id=receiver.user_id,
        type=TransactionType.REVERSAL,
        action=TransactionAction.RESTORE_DAMPEN,
        amount=amount,
        balance_after=receiver_after,
        target_id=target_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        multiplier=receiver.multiplier,
        metadata=meta,
    )
    return _result(True, amount, payer, receiver)


def _record_pair(
    session: Session,
    payer: UserPoints,
    receiver: UserPoints,
    txn_type: TransactionType,
    payer_row: tuple[TransactionAction, int, int],
    receiver_row: tuple[TransactionAction, int, int],
    target_id: str | None,
    metadata: dict,
) -> None:
    for ledger, (action, amount, balance_after) in (
        (payer, payer_row),
        (receiver, receiver_row),
    ):
        record_transaction(
            session,
            user_id=ledger.user_id,
            type=txn_type,
            action=action,
            amount=amount,
            balance_after=balance_after,
            target_id=target_id,
            from_user_id=payer.user_id,
            to_user_id=receiver.user_id,
            multiplier=ledger.multiplier,
            metadata=metadata,
        )


def _result(
    success: bool,
    moved: int,
    payer: UserPoints,
    receiver: UserPoints,
    error: str | None = None,
) -> TransferResult:
    return TransferResult(
        success=success,
        amount_moved=moved,
        from_balance=payer.current_balance,
        to_balance=receiver.current_balance,
        error=error,
    )
