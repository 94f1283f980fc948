"""
Transaction history queries.

Read-only views of the ledger. Listing never touches balances: a user's
points come from User.points, not from summing what a page of history shows.
"""
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, aliased, selectinload

from ..models.transaction import RELATED_ID_TYPES, Transaction, TransactionPromotion, TransactionType
from ..models.user import User
from ..utils.exceptions import TransactionNotFoundError, ValidationError

VALID_OPERATORS = ('gte', 'lte')
VALID_TYPES = tuple(t.value for t in TransactionType)


def _parse_int(value, name: str, minimum: Optional[int] = None) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", name)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{name} must be at least {minimum}", name)
    return number


def _parse_bool(value, name: str) -> Optional[bool]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).lower()
    if lowered in ('true', '1'):
        return True
    if lowered in ('false', '0'):
        return False
    raise ValidationError(f"{name} must be true or false", name)


@dataclass(frozen=True)
class TransactionFilters:
    name: Optional[str] = None
    created_by: Optional[str] = None
    suspicious: Optional[bool] = None
    transaction_type: Optional[str] = None
    related_id: Optional[int] = None
    amount: Optional[int] = None
    operator: Optional[str] = None
    promotion_id: Optional[int] = None

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> 'TransactionFilters':
        transaction_type = args.get('type') or None
        if transaction_type is not None and transaction_type not in VALID_TYPES:
            raise ValidationError(f"type must be one of {', '.join(VALID_TYPES)}", 'type')

        amount = _parse_int(args.get('amount'), 'amount')
        operator = args.get('operator') or None
        if operator is not None and operator not in VALID_OPERATORS:
            raise ValidationError("operator must be 'gte' or 'lte'", 'operator')
        if (amount is None) != (operator is None):
            raise ValidationError("amount and operator must be given together", 'operator')

        return cls(
            name=args.get('name') or None,
            created_by=args.get('createdBy') or None,
            suspicious=_parse_bool(args.get('suspicious'), 'suspicious'),
            transaction_type=transaction_type,
            related_id=_parse_int(args.get('relatedId'), 'relatedId'),
            amount=amount,
            operator=operator,
            promotion_id=_parse_int(args.get('promotionId'), 'promotionId'),
        )


@dataclass(frozen=True)
class Page:
    page: int = 1
    limit: int = 10

    @classmethod
    def from_args(cls, args: Mapping[str, Any], default_limit: int = 10, max_limit: int = 100) -> 'Page':
        page = _parse_int(args.get('page'), 'page', minimum=1) or 1
        limit = _parse_int(args.get('limit'), 'limit', minimum=1) or default_limit
        return cls(page=page, limit=min(limit, max_limit))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class TransactionQueryService:
    """Listing and lookup of ledger transactions."""

    def __init__(self, session: Session):
        self.session = session

    def get_transaction(self, transaction_id: int) -> Dict[str, Any]:
        transaction = self.session.get(Transaction, transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction.to_dict(include_processed_by=True)

    def list_transactions(self, filters: TransactionFilters, page: Page) -> Dict[str, Any]:
        """All transactions matching `filters`, newest first."""
        stmt = self._apply_filters(select(Transaction), filters)
        return self._paginate(stmt, page, lambda t: t.to_dict())

    def list_own_transactions(self, user_id: int, filters: TransactionFilters, page: Page) -> Dict[str, Any]:
        """
        One user's transactions, newest first.

        Transfer rows also carry the counterparty's utorid as relatedUserUtorid.
        """
        own_filters = TransactionFilters(
            transaction_type=filters.transaction_type,
            related_id=filters.related_id,
            amount=filters.amount,
            operator=filters.operator,
            promotion_id=filters.promotion_id,
        )
        stmt = self._apply_filters(
            select(Transaction).where(Transaction.user_id == user_id), own_filters
        )
        result = self._paginate(stmt, page, self._own_view)

        related_ids = {
            row['relatedId'] for row in result['results']
            if row.get('relatedId') is not None and row['type'] == TransactionType.TRANSFER.value
        }
        if related_ids:
            utorids = dict(self.session.execute(
                select(User.id, User.utorid).where(User.id.in_(related_ids))
            ).all())
            for row in result['results']:
                if row.get('relatedId') in utorids and row['type'] == TransactionType.TRANSFER.value:
                    row['relatedUserUtorid'] = utorids[row['relatedId']]

        return result

    # ==================== Internals ====================

    @staticmethod
    def _own_view(transaction: Transaction) -> Dict[str, Any]:
        data = transaction.to_dict()
        data.pop('suspicious', None)  # review state stays internal
        data.pop('utorid', None)
        return data

    def _apply_filters(self, stmt, filters: TransactionFilters):
        if filters.name:
            owner = aliased(User)
            pattern = f'%{filters.name}%'
            stmt = stmt.join(owner, Transaction.user_id == owner.id).where(
                or_(owner.utorid.ilike(pattern), owner.name.ilike(pattern))
            )
        if filters.created_by:
            creator = aliased(User)
            stmt = stmt.join(creator, Transaction.created_by_id == creator.id).where(
                creator.utorid == filters.created_by
            )
        if filters.suspicious is not None:
            stmt = stmt.where(Transaction.suspicious.is_(filters.suspicious))
        if filters.transaction_type:
            stmt = stmt.where(Transaction.transaction_type == filters.transaction_type)
        if filters.related_id is not None:
            stmt = stmt.where(
                Transaction.related_id == filters.related_id,
                Transaction.transaction_type.in_(RELATED_ID_TYPES),
            )
        if filters.amount is not None:
            if filters.operator == 'gte':
                stmt = stmt.where(Transaction.amount >= filters.amount)
            else:
                stmt = stmt.where(Transaction.amount <= filters.amount)
        if filters.promotion_id is not None:
            stmt = stmt.where(
                Transaction.id.in_(
                    select(TransactionPromotion.transaction_id).where(
                        TransactionPromotion.promotion_id == filters.promotion_id
                    )
                )
            )
        return stmt

    def _paginate(self, stmt, page: Page, serialize) -> Dict[str, Any]:
        count = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar()
        rows = self.session.scalars(
            stmt.options(
                selectinload(Transaction.promotion_links),
                selectinload(Transaction.user),
                selectinload(Transaction.created_by),
            )
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(page.limit)
            .offset(page.offset)
        ).all()
        return {
            'count': count,
            'results': [serialize(t) for t in rows],
        }
