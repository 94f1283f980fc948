"""
Storage ports used by the ledger engine.

The ledger depends on three narrow interfaces rather than on the ORM directly:

- PromotionCatalog: read-only promotion lookups
- UserBalance: user lookups and atomic balance increments
- TransactionStore: transaction rows, usage tracking and the unit of work

SqlAlchemyLedgerStore implements all three on top of one SQLAlchemy session,
which is handed in by the caller and lives for one request.

Balance changes are issued as a single conditional UPDATE
(points = points + delta WHERE points + delta >= 0), so two concurrent
mutations of the same user can neither lose an update nor drive the balance
negative, and no application-level lock is needed.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from ..models.promotion import Promotion, PromotionType, PromotionUsage
from ..models.transaction import Transaction, TransactionPromotion
from ..models.user import User
from ..utils.exceptions import InternalError, LedgerError

logger = logging.getLogger(__name__)


class UsageResult(str, Enum):
    """Outcome of recording a one-time promotion usage."""
    INSERTED = 'inserted'
    CONFLICT = 'conflict'


class PromotionCatalog(Protocol):
    def automatic_promotions(self, spent: Decimal, as_of: datetime) -> List[Promotion]: ...

    def promotions_by_id(self, promotion_ids: Iterable[int]) -> List[Promotion]: ...

    def has_usage(self, user_id: int, promotion_id: int) -> bool: ...


class UserBalance(Protocol):
    def get_user(self, user_id: int) -> Optional[User]: ...

    def get_user_by_utorid(self, utorid: str) -> Optional[User]: ...

    def current_points(self, user_id: int) -> int: ...

    def increment_points(self, user_id: int, delta: int) -> bool: ...


class TransactionStore(Protocol):
    def unit_of_work(self): ...

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]: ...

    def add_transaction(self, transaction: Transaction, promotion_ids: Iterable[int] = ()) -> Transaction: ...

    def record_usage(self, user_id: int, promotion_id: int) -> UsageResult: ...

    def mark_processed(self, transaction_id: int, processor_id: int, processed_at: datetime) -> bool: ...

    def set_suspicious_flag(self, transaction_id: int, value: bool) -> bool: ...


class SqlAlchemyLedgerStore:
    """SQLAlchemy implementation of PromotionCatalog, UserBalance and TransactionStore."""

    def __init__(self, session: Session):
        self.session = session

    # ==================== Unit of work ====================

    @contextmanager
    def unit_of_work(self):
        """
        Run a block of ledger writes as one all-or-nothing database transaction.

        Commits when the block exits normally. Any exception rolls back every
        write made in the block. Ledger errors propagate unchanged; unexpected
        storage failures are logged and re-raised as InternalError.
        """
        try:
            yield self
            self.session.commit()
        except LedgerError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Ledger unit of work failed: %s", e)
            raise InternalError() from e
        except Exception:
            self.session.rollback()
            raise

    # ==================== PromotionCatalog ====================

    def automatic_promotions(self, spent: Decimal, as_of: datetime) -> List[Promotion]:
        stmt = (
            select(Promotion)
            .where(
                Promotion.promo_type == PromotionType.AUTOMATIC.value,
                Promotion.start_time <= as_of,
                Promotion.end_time > as_of,
            )
            .order_by(Promotion.id)
        )
        # Minimum spend is compared in Python so Decimal semantics match the calculator
        return [p for p in self.session.scalars(stmt) if p.meets_minimum(spent)]

    def promotions_by_id(self, promotion_ids: Iterable[int]) -> List[Promotion]:
        ids = list(promotion_ids)
        if not ids:
            return []
        stmt = select(Promotion).where(Promotion.id.in_(ids)).order_by(Promotion.id)
        return list(self.session.scalars(stmt))

    def has_usage(self, user_id: int, promotion_id: int) -> bool:
        stmt = select(PromotionUsage.id).where(
            PromotionUsage.user_id == user_id,
            PromotionUsage.promotion_id == promotion_id,
        )
        return self.session.execute(stmt).first() is not None

    # ==================== UserBalance ====================

    def get_user(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_user_by_utorid(self, utorid: str) -> Optional[User]:
        return self.session.scalars(select(User).where(User.utorid == utorid)).first()

    def current_points(self, user_id: int) -> int:
        points = self.session.execute(
            select(User.points).where(User.id == user_id)
        ).scalar()
        return points or 0

    def increment_points(self, user_id: int, delta: int) -> bool:
        """
        Atomically add `delta` to a user's balance.

        Returns False, changing nothing, if the result would be negative.
        """
        if delta == 0:
            return True
        result = self.session.execute(
            update(User)
            .where(User.id == user_id, User.points + delta >= 0)
            .values(points=User.points + delta)
            .execution_options(synchronize_session=False)
        )
        self._expire(User, user_id, 'points')
        return result.rowcount == 1

    # ==================== TransactionStore ====================

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self.session.get(Transaction, transaction_id)

    def add_transaction(self, transaction: Transaction, promotion_ids: Iterable[int] = ()) -> Transaction:
        self.session.add(transaction)
        self.session.flush()
        for promotion_id in sorted(set(promotion_ids)):
            self.session.add(TransactionPromotion(
                transaction_id=transaction.id,
                promotion_id=promotion_id,
            ))
        self.session.flush()
        return transaction

    def record_usage(self, user_id: int, promotion_id: int) -> UsageResult:
        """
        Insert the (user, promotion) usage row.

        A concurrent insert of the same pair surfaces as CONFLICT. After a
        conflict the session must be rolled back, which unit_of_work does.
        """
        self.session.add(PromotionUsage(user_id=user_id, promotion_id=promotion_id))
        try:
            self.session.flush()
        except IntegrityError:
            logger.warning(
                "Promotion usage conflict for user %s promotion %s", user_id, promotion_id
            )
            return UsageResult.CONFLICT
        return UsageResult.INSERTED

    def mark_processed(self, transaction_id: int, processor_id: int, processed_at: datetime) -> bool:
        """Stamp a redemption as processed. Returns False if it already was."""
        result = self.session.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.processed_at.is_(None))
            .values(processed_at=processed_at, processed_by_id=processor_id)
            .execution_options(synchronize_session=False)
        )
        self._expire(Transaction, transaction_id, 'processed_at', 'processed_by_id', 'processed_by')
        return result.rowcount == 1

    def set_suspicious_flag(self, transaction_id: int, value: bool) -> bool:
        """Set the flag. Returns True only if this call changed it."""
        result = self.session.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.suspicious.is_not(value))
            .values(suspicious=value)
            .execution_options(synchronize_session=False)
        )
        self._expire(Transaction, transaction_id, 'suspicious')
        return result.rowcount == 1

    # ==================== Read helpers ====================

    def usage_count(self, user_id: int, promotion_id: int) -> int:
        return self.session.execute(
            select(func.count(PromotionUsage.id)).where(
                PromotionUsage.user_id == user_id,
                PromotionUsage.promotion_id == promotion_id,
            )
        ).scalar()

    def _expire(self, model, pk, *attributes):
        # Bulk UPDATEs bypass the identity map, so drop stale loaded values
        instance = self.session.identity_map.get(identity_key(model, pk))
        if instance is not None:
            self.session.expire(instance, list(attributes))
