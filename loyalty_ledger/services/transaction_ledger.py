"""
Transaction Ledger for the loyalty program.

Creates every kind of points transaction and moves the owner's balance with it:

- purchase: promotions resolved, points calculated, credited unless the
  creating cashier is flagged suspicious
- adjustment: manager correction, applied immediately
- redemption: requested by the owner, debited only when a cashier processes it
- transfer: paired debit/credit between two users

Each mutation is one unit of work. Usage rows, transaction rows and balance
increments commit together or not at all; any rejection leaves balances and
usage records exactly as they were.

Usage:
    store = SqlAlchemyLedgerStore(db.session)
    ledger = TransactionLedger(store)

    result = ledger.create_purchase(caller, CreatePurchase('alice001', Decimal('25')))
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

from ..models.transaction import Transaction, TransactionType
from ..models.user import Role, User
from ..utils.exceptions import (
    AlreadyProcessedError,
    ForbiddenError,
    NegativeBalanceError,
    TransactionNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from .commands import (
    CallerContext,
    CreateAdjustment,
    CreatePurchase,
    CreateRedemption,
    CreateTransfer,
    ProcessRedemption,
)
from .points_calculator import PointsCalculator
from .promotion_resolver import PromotionResolver
from .promotion_usage import PromotionUsageTracker

logger = logging.getLogger(__name__)


# ==================== Results ====================

@dataclass(frozen=True)
class PurchaseResult:
    transaction_id: int
    utorid: str
    spent: float
    earned_points: int
    promotion_ids_applied: List[int] = field(default_factory=list)
    suspicious_withheld: bool = False
    remark: str = ''
    created_by: str = ''

    def to_dict(self) -> Dict[str, Any]:
        credited = 0 if self.suspicious_withheld else self.earned_points
        return {
            'id': self.transaction_id,
            'transactionId': self.transaction_id,
            'utorid': self.utorid,
            'type': TransactionType.PURCHASE.value,
            'spent': self.spent,
            'earned': credited,
            'earnedPoints': self.earned_points,
            'promotionIds': list(self.promotion_ids_applied),
            'suspiciousWithheld': self.suspicious_withheld,
            'remark': self.remark,
            'createdBy': self.created_by,
        }


@dataclass(frozen=True)
class AdjustmentResult:
    transaction_id: int
    utorid: str
    amount: int
    related_id: Optional[int] = None
    remark: str = ''
    created_by: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.transaction_id,
            'transactionId': self.transaction_id,
            'utorid': self.utorid,
            'type': TransactionType.ADJUSTMENT.value,
            'amount': self.amount,
            'relatedId': self.related_id,
            'remark': self.remark,
            'promotionIds': [],
            'createdBy': self.created_by,
        }


@dataclass(frozen=True)
class RedemptionResult:
    transaction_id: int
    utorid: str
    amount: int
    remark: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.transaction_id,
            'transactionId': self.transaction_id,
            'utorid': self.utorid,
            'type': TransactionType.REDEMPTION.value,
            'status': 'pending',
            'processedBy': None,
            'amount': self.amount,
            'remark': self.remark,
            'createdBy': self.utorid,
        }


@dataclass(frozen=True)
class ProcessedRedemptionResult:
    transaction_id: int
    utorid: str
    redeemed: int
    processed_at: datetime
    processed_by: str
    remark: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.transaction_id,
            'transactionId': self.transaction_id,
            'utorid': self.utorid,
            'type': TransactionType.REDEMPTION.value,
            'processedAt': self.processed_at.isoformat(),
            'processedBy': self.processed_by,
            'redeemed': self.redeemed,
            'remark': self.remark,
            'createdBy': self.utorid,
        }


@dataclass(frozen=True)
class TransferResult:
    sender_transaction_id: int
    receiver_transaction_id: int
    sender: str
    recipient: str
    amount: int
    remark: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.sender_transaction_id,
            'senderTransactionId': self.sender_transaction_id,
            'receiverTransactionId': self.receiver_transaction_id,
            'sender': self.sender,
            'recipient': self.recipient,
            'type': TransactionType.TRANSFER.value,
            'sent': self.amount,
            'remark': self.remark,
            'createdBy': self.sender,
        }


# ==================== Ledger ====================

class TransactionLedger:
    """
    Creates ledger transactions and applies their balance effects atomically.

    `store` must implement PromotionCatalog, UserBalance and TransactionStore
    (SqlAlchemyLedgerStore does). `clock` supplies the evaluation time for
    promotion windows and processing stamps.
    """

    def __init__(
        self,
        store,
        calculator: PointsCalculator = None,
        clock: Callable[[], datetime] = None,
        require_verified: bool = True,
    ):
        self.store = store
        self.calculator = calculator or PointsCalculator()
        self.resolver = PromotionResolver(store)
        self.usage_tracker = PromotionUsageTracker(store, store)
        self.clock = clock or datetime.utcnow
        self.require_verified = require_verified

    # ==================== Purchase ====================

    def create_purchase(self, caller: CallerContext, command: CreatePurchase) -> PurchaseResult:
        """
        Record a purchase and credit the points it earns.

        The transaction inherits the creating cashier's suspicious flag; when
        set, the full award is stored but not credited until cleared.

        Raises:
            ForbiddenError, UserNotFoundError, InvalidPromotionError,
            PromotionNotApplicableError, PromotionAlreadyUsedError
        """
        self._require_role(caller, Role.CASHIER, 'create purchases')
        creator = self._load_creator(caller, Role.CASHIER, 'create purchases')
        owner = self._load_user_by_utorid(command.owner_utorid)

        with self.store.unit_of_work():
            resolved = self.resolver.resolve(
                user_id=owner.id,
                spent=command.spent,
                manual_promotion_ids=command.promotion_ids,
                as_of=self.clock(),
            )
            earned = self.calculator.calculate(command.spent, resolved.promotions)
            withheld = bool(creator.suspicious)

            self.usage_tracker.mark_used(owner.id, resolved.one_time)

            transaction = self.store.add_transaction(
                Transaction(
                    user_id=owner.id,
                    transaction_type=TransactionType.PURCHASE.value,
                    amount=earned,
                    spent=command.spent,
                    suspicious=withheld,
                    remark=command.remark,
                    created_by_id=creator.id,
                ),
                promotion_ids=resolved.promotion_ids,
            )

            if not withheld:
                self._apply_delta(owner.id, earned)

        logger.info(
            f"Purchase {transaction.id}: {owner.utorid} earned {earned} pts on ${command.spent} "
            f"by {creator.utorid}{' (withheld, suspicious)' if withheld else ''}"
        )

        return PurchaseResult(
            transaction_id=transaction.id,
            utorid=owner.utorid,
            spent=float(command.spent),
            earned_points=earned,
            promotion_ids_applied=resolved.promotion_ids,
            suspicious_withheld=withheld,
            remark=command.remark or '',
            created_by=creator.utorid,
        )

    # ==================== Adjustment ====================

    def create_adjustment(self, caller: CallerContext, command: CreateAdjustment) -> AdjustmentResult:
        """
        Apply a manager correction to a user's balance.

        Applied immediately regardless of any suspicious state.

        Raises:
            ForbiddenError, UserNotFoundError, TransactionNotFoundError, NegativeBalanceError
        """
        self._require_role(caller, Role.MANAGER, 'create adjustments')
        creator = self._load_creator(caller, Role.MANAGER, 'create adjustments')
        owner = self._load_user_by_utorid(command.owner_utorid)

        if command.related_id is not None and self.store.get_transaction(command.related_id) is None:
            raise TransactionNotFoundError(command.related_id)

        with self.store.unit_of_work():
            transaction = self.store.add_transaction(Transaction(
                user_id=owner.id,
                transaction_type=TransactionType.ADJUSTMENT.value,
                amount=command.amount,
                related_id=command.related_id,
                remark=command.remark,
                created_by_id=creator.id,
            ))
            self._apply_delta(owner.id, command.amount)

        logger.info(
            f"Adjustment {transaction.id}: {owner.utorid} "
            f"{'+' if command.amount > 0 else ''}{command.amount} pts by {creator.utorid}"
        )

        return AdjustmentResult(
            transaction_id=transaction.id,
            utorid=owner.utorid,
            amount=command.amount,
            related_id=command.related_id,
            remark=command.remark or '',
            created_by=creator.utorid,
        )

    # ==================== Redemption ====================

    def create_redemption(self, caller: CallerContext, command: CreateRedemption) -> RedemptionResult:
        """
        Request a redemption for the caller's own points.

        The request is pending: the balance is only debited when a cashier
        processes it.

        Raises:
            ForbiddenError, UserNotFoundError, NegativeBalanceError
        """
        self._require_role(caller, Role.REGULAR, 'request redemptions')
        owner = self._load_creator(caller, Role.REGULAR, 'request redemptions')
        self._require_verified(owner, 'request redemptions')

        current = self.store.current_points(owner.id)
        if current < command.amount:
            raise NegativeBalanceError(current, -command.amount)

        with self.store.unit_of_work():
            transaction = self.store.add_transaction(Transaction(
                user_id=owner.id,
                transaction_type=TransactionType.REDEMPTION.value,
                amount=-command.amount,
                redeemed=command.amount,
                remark=command.remark,
                created_by_id=owner.id,
            ))

        logger.info(f"Redemption {transaction.id} requested: {owner.utorid} {command.amount} pts")

        return RedemptionResult(
            transaction_id=transaction.id,
            utorid=owner.utorid,
            amount=command.amount,
            remark=command.remark or '',
        )

    def process_redemption(self, caller: CallerContext, command: ProcessRedemption) -> ProcessedRedemptionResult:
        """
        Complete a pending redemption and debit the owner.

        Raises:
            ForbiddenError, TransactionNotFoundError, ValidationError,
            AlreadyProcessedError, NegativeBalanceError
        """
        self._require_role(caller, Role.CASHIER, 'process redemptions')
        processor = self._load_creator(caller, Role.CASHIER, 'process redemptions')

        transaction = self.store.get_transaction(command.transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(command.transaction_id)
        if transaction.transaction_type != TransactionType.REDEMPTION.value:
            raise ValidationError("Transaction is not a redemption", 'transactionId')
        if transaction.processed_at is not None:
            raise AlreadyProcessedError(transaction.id)

        processed_at = self.clock()
        with self.store.unit_of_work():
            # Conditional on processed_at IS NULL, so a concurrent processor loses here
            if not self.store.mark_processed(transaction.id, processor.id, processed_at):
                raise AlreadyProcessedError(transaction.id)
            self._apply_delta(transaction.user_id, -transaction.redeemed)

        owner = transaction.user
        logger.info(
            f"Redemption {transaction.id} processed: {owner.utorid} -{transaction.redeemed} pts "
            f"by {processor.utorid}"
        )

        return ProcessedRedemptionResult(
            transaction_id=transaction.id,
            utorid=owner.utorid,
            redeemed=transaction.redeemed,
            processed_at=processed_at,
            processed_by=processor.utorid,
            remark=transaction.remark or '',
        )

    # ==================== Transfer ====================

    def create_transfer(self, caller: CallerContext, command: CreateTransfer) -> TransferResult:
        """
        Move points from the caller to another user.

        Creates a debit for the sender and a credit for the recipient, each
        carrying the other party's user id as related_id.

        Raises:
            ForbiddenError, UserNotFoundError, ValidationError, NegativeBalanceError
        """
        self._require_role(caller, Role.REGULAR, 'transfer points')
        sender = self._load_creator(caller, Role.REGULAR, 'transfer points')
        self._require_verified(sender, 'transfer points')

        recipient = self._load_user_by_utorid(command.recipient_utorid)
        if recipient.id == sender.id:
            raise ValidationError("Cannot transfer points to yourself", 'utorid')
        if self.require_verified and not recipient.verified:
            raise ValidationError("Recipient is not verified", 'utorid')

        with self.store.unit_of_work():
            debit = self.store.add_transaction(Transaction(
                user_id=sender.id,
                transaction_type=TransactionType.TRANSFER.value,
                amount=-command.amount,
                related_id=recipient.id,
                remark=command.remark,
                created_by_id=sender.id,
            ))
            credit = self.store.add_transaction(Transaction(
                user_id=recipient.id,
                transaction_type=TransactionType.TRANSFER.value,
                amount=command.amount,
                related_id=sender.id,
                remark=command.remark,
                created_by_id=sender.id,
            ))
            self._apply_delta(sender.id, -command.amount)
            self._apply_delta(recipient.id, command.amount)

        logger.info(
            f"Transfer {debit.id}/{credit.id}: {sender.utorid} -> {recipient.utorid} {command.amount} pts"
        )

        return TransferResult(
            sender_transaction_id=debit.id,
            receiver_transaction_id=credit.id,
            sender=sender.utorid,
            recipient=recipient.utorid,
            amount=command.amount,
            remark=command.remark or '',
        )

    # ==================== Helpers ====================

    def _apply_delta(self, user_id: int, delta: int) -> None:
        if not self.store.increment_points(user_id, delta):
            raise NegativeBalanceError(self.store.current_points(user_id), delta)

    def _require_role(self, caller: CallerContext, minimum: Role, action: str) -> None:
        if not Role(caller.role).at_least(minimum):
            raise ForbiddenError(f"Role {minimum.value} or higher required to {action}")

    def _require_verified(self, user: User, action: str) -> None:
        if self.require_verified and not user.verified:
            raise ForbiddenError(f"User must be verified to {action}")

    def _load_creator(self, caller: CallerContext, minimum: Role, action: str) -> User:
        """Load the caller and check the role stored for them, not just the one claimed."""
        user = self.store.get_user(caller.subject)
        if user is None:
            raise UserNotFoundError(caller.subject)
        if not Role(user.role).at_least(minimum):
            raise ForbiddenError(f"Role {minimum.value} or higher required to {action}")
        return user

    def _load_user_by_utorid(self, utorid: str) -> User:
        user = self.store.get_user_by_utorid(utorid)
        if user is None:
            raise UserNotFoundError(utorid)
        return user
