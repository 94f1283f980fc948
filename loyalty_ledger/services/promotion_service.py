"""
Promotion catalog management.

Managers create, edit and delete promotions; everyone can browse them.
Once a promotion has started its terms are frozen, and a promotion that any
transaction references can never be deleted, so past awards always match
the promotion that produced them.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from ..models.promotion import Promotion, PromotionType, PromotionUsage
from ..models.transaction import TransactionPromotion
from ..models.user import Role
from ..utils.exceptions import ForbiddenError, PromotionNotFoundError, ValidationError
from .commands import CallerContext
from .transaction_query import Page

logger = logging.getLogger(__name__)

VALID_PROMOTION_TYPES = tuple(t.value for t in PromotionType)

# Fields that may not change after the promotion has started
FROZEN_AFTER_START = ('name', 'description', 'type', 'startTime', 'minSpending', 'rate', 'points')


def _parse_datetime(value, name: str) -> datetime:
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an ISO 8601 string", name)
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO 8601 string", name)
    if parsed.tzinfo is not None:
        # Stored as naive UTC
        parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
    return parsed


def _parse_non_negative_decimal(value, name: str) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a non-negative number", name)
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a non-negative number", name)
    if not number.is_finite() or number < 0:
        raise ValidationError(f"{name} must be a non-negative number", name)
    return number


def _parse_non_negative_int(value, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer", name)
    return value


def _parse_type(value) -> str:
    if value not in VALID_PROMOTION_TYPES:
        raise ValidationError(
            f"type must be one of {', '.join(VALID_PROMOTION_TYPES)}", 'type'
        )
    return value


def _parse_text(value, name: str, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string", name)
    if len(value) > max_length:
        raise ValidationError(f"{name} must be at most {max_length} characters", name)
    return value.strip()


class PromotionService:
    """CRUD for the promotion catalog."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = None):
        self.session = session
        self.clock = clock or datetime.utcnow

    def create_promotion(self, caller: CallerContext, payload: Mapping[str, Any]) -> Promotion:
        self._require_manager(caller)
        now = self.clock()

        for required in ('name', 'description', 'type', 'startTime', 'endTime'):
            if payload.get(required) is None:
                raise ValidationError(f"Missing field: {required}", required)

        start = _parse_datetime(payload['startTime'], 'startTime')
        end = _parse_datetime(payload['endTime'], 'endTime')
        if start < now:
            raise ValidationError("startTime cannot be in the past", 'startTime')
        if start >= end:
            raise ValidationError("startTime must be before endTime", 'startTime')

        promotion = Promotion(
            name=_parse_text(payload['name'], 'name', 100),
            description=_parse_text(payload['description'], 'description', 500),
            promo_type=_parse_type(payload['type']),
            start_time=start,
            end_time=end,
            min_spending=_parse_non_negative_decimal(payload.get('minSpending'), 'minSpending'),
            rate=_parse_non_negative_decimal(payload.get('rate'), 'rate'),
            points=_parse_non_negative_int(payload.get('points'), 'points'),
        )
        self.session.add(promotion)
        self.session.commit()

        logger.info(f"Promotion {promotion.id} created: {promotion.name} ({promotion.promo_type})")
        return promotion

    def list_promotions(
        self,
        caller: CallerContext,
        args: Mapping[str, Any],
        page: Page,
    ) -> Dict[str, Any]:
        """
        List promotions.

        Managers see everything and may filter by started/ended. Everyone else
        only sees promotions active now that they have not already consumed.
        """
        now = self.clock()
        is_manager = Role(caller.role).at_least(Role.MANAGER)
        stmt = select(Promotion)

        name = args.get('name')
        if name:
            stmt = stmt.where(Promotion.name.ilike(f'%{name}%'))
        promo_type = args.get('type')
        if promo_type:
            stmt = stmt.where(Promotion.promo_type == _parse_type(promo_type))

        started = args.get('started')
        ended = args.get('ended')
        if is_manager:
            if started is not None and ended is not None:
                raise ValidationError("Cannot filter by both started and ended", 'started')
            if started is not None:
                stmt = stmt.where(
                    Promotion.start_time <= now if started == 'true' else Promotion.start_time > now
                )
            if ended is not None:
                stmt = stmt.where(
                    Promotion.end_time <= now if ended == 'true' else Promotion.end_time > now
                )
        else:
            used = exists().where(
                PromotionUsage.promotion_id == Promotion.id,
                PromotionUsage.user_id == caller.subject,
            )
            stmt = stmt.where(
                Promotion.start_time <= now,
                Promotion.end_time > now,
                ~(Promotion.promo_type == PromotionType.ONE_TIME.value) | ~used,
            )

        count = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar()
        rows = self.session.scalars(
            stmt.order_by(Promotion.id).limit(page.limit).offset(page.offset)
        ).all()
        return {
            'count': count,
            'results': [
                p.to_dict(include_start=is_manager, include_description=False) for p in rows
            ],
        }

    def get_promotion(self, caller: CallerContext, promotion_id: int) -> Promotion:
        promotion = self.session.get(Promotion, promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)
        if not Role(caller.role).at_least(Role.MANAGER) and not promotion.is_active_at(self.clock()):
            # Inactive promotions are invisible to regular users
            raise PromotionNotFoundError(promotion_id)
        return promotion

    def update_promotion(
        self,
        caller: CallerContext,
        promotion_id: int,
        payload: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """
        Update a promotion.

        Returns the id, name, type and whichever fields were changed.
        """
        self._require_manager(caller)
        promotion = self.session.get(Promotion, promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)

        now = self.clock()
        given = {k: v for k, v in payload.items() if v is not None}

        if promotion.start_time <= now:
            frozen = [f for f in FROZEN_AFTER_START if f in given]
            if frozen:
                raise ValidationError(
                    f"Cannot update {', '.join(frozen)} after promotion has started", frozen[0]
                )
        if promotion.end_time <= now and 'endTime' in given:
            raise ValidationError("Cannot update endTime after promotion has ended", 'endTime')

        start = _parse_datetime(given['startTime'], 'startTime') if 'startTime' in given else promotion.start_time
        end = _parse_datetime(given['endTime'], 'endTime') if 'endTime' in given else promotion.end_time
        if ('startTime' in given and start < now) or ('endTime' in given and end < now):
            raise ValidationError("startTime and endTime cannot be in the past", 'startTime')
        if start >= end:
            raise ValidationError("startTime must be before endTime", 'startTime')

        updated: Dict[str, Any] = {}
        if 'name' in given:
            promotion.name = updated['name'] = _parse_text(given['name'], 'name', 100)
        if 'description' in given:
            promotion.description = updated['description'] = _parse_text(given['description'], 'description', 500)
        if 'type' in given:
            promotion.promo_type = updated['type'] = _parse_type(given['type'])
        if 'startTime' in given:
            promotion.start_time = start
            updated['startTime'] = start.isoformat()
        if 'endTime' in given:
            promotion.end_time = end
            updated['endTime'] = end.isoformat()
        if 'minSpending' in given:
            promotion.min_spending = _parse_non_negative_decimal(given['minSpending'], 'minSpending')
            updated['minSpending'] = float(promotion.min_spending)
        if 'rate' in given:
            promotion.rate = _parse_non_negative_decimal(given['rate'], 'rate')
            updated['rate'] = float(promotion.rate)
        if 'points' in given:
            promotion.points = updated['points'] = _parse_non_negative_int(given['points'], 'points')

        self.session.commit()
        logger.info(f"Promotion {promotion.id} updated: {sorted(updated)}")

        return {
            'id': promotion.id,
            'name': promotion.name,
            'type': promotion.promo_type,
            **updated,
        }

    def delete_promotion(self, caller: CallerContext, promotion_id: int) -> None:
        self._require_manager(caller)
        promotion = self.session.get(Promotion, promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)
        if promotion.start_time <= self.clock():
            raise ForbiddenError("Cannot delete a promotion that has started")

        referenced = self.session.execute(
            select(
                exists().where(TransactionPromotion.promotion_id == promotion_id)
                | exists().where(PromotionUsage.promotion_id == promotion_id)
            )
        ).scalar()
        if referenced:
            raise ForbiddenError("Cannot delete a promotion that has been used")

        self.session.delete(promotion)
        self.session.commit()
        logger.info(f"Promotion {promotion_id} deleted")

    @staticmethod
    def _require_manager(caller: CallerContext) -> None:
        if not Role(caller.role).at_least(Role.MANAGER):
            raise ForbiddenError("Role manager or higher required to manage promotions")
