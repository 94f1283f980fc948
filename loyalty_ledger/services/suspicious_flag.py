"""
Suspicious flag reconciliation.

A transaction flagged suspicious has not had its amount applied to the
owner's balance. Toggling the flag applies the compensating delta exactly once:

- false -> true: debit the owner by `amount` (credit revoked)
- true -> false: credit the owner by `amount` (deferred credit granted)
- unchanged: no-op, balance untouched
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict

from ..models.user import Role
from ..utils.exceptions import (
    ForbiddenError,
    NegativeBalanceError,
    TransactionNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from .commands import CallerContext, SetSuspicious

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuspiciousResult:
    transaction_id: int
    suspicious: bool
    balance_delta: int
    transaction: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.transaction)
        data.update({
            'transactionId': self.transaction_id,
            'suspicious': self.suspicious,
            'balanceDelta': self.balance_delta,
        })
        return data


class SuspiciousFlagController:
    """Toggles a transaction's suspicious flag together with its balance effect."""

    def __init__(self, store):
        self.store = store

    def set_suspicious(self, caller: CallerContext, command: SetSuspicious) -> SuspiciousResult:
        """
        Set the suspicious flag on a transaction.

        Raises:
            ForbiddenError: caller below manager, as claimed or as stored
            UserNotFoundError: caller has no account
            TransactionNotFoundError: unknown transaction
            ValidationError: redemption not yet processed (its amount was never applied)
            NegativeBalanceError: revoking the credit would take the owner below zero
        """
        if not Role(caller.role).at_least(Role.MANAGER):
            raise ForbiddenError("Role manager or higher required to flag transactions")
        flagger = self.store.get_user(caller.subject)
        if flagger is None:
            raise UserNotFoundError(caller.subject)
        if not Role(flagger.role).at_least(Role.MANAGER):
            raise ForbiddenError("Role manager or higher required to flag transactions")

        transaction = self.store.get_transaction(command.transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(command.transaction_id)
        if transaction.is_pending_redemption:
            raise ValidationError(
                "Cannot flag a redemption before it is processed", 'transactionId'
            )

        delta = 0
        with self.store.unit_of_work():
            # Conditional update: only one caller can observe the transition
            if self.store.set_suspicious_flag(transaction.id, command.suspicious):
                delta = -transaction.amount if command.suspicious else transaction.amount
                if not self.store.increment_points(transaction.user_id, delta):
                    raise NegativeBalanceError(
                        self.store.current_points(transaction.user_id), delta
                    )

        if delta:
            logger.info(
                f"Transaction {transaction.id} suspicious={command.suspicious}: "
                f"user {transaction.user_id} balance {'+' if delta > 0 else ''}{delta} pts"
            )

        return SuspiciousResult(
            transaction_id=transaction.id,
            suspicious=transaction.suspicious,
            balance_delta=delta,
            transaction=transaction.to_dict(),
        )
