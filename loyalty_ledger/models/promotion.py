"""
Promotion catalog and one-time promotion usage models.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum

from ..extensions import db


class PromotionType(str, Enum):
    """Kinds of promotion."""
    AUTOMATIC = 'automatic'   # Applies to every qualifying purchase
    ONE_TIME = 'one-time'     # Selected by the cashier, consumable once per user


class Promotion(db.Model):
    """
    Promotion that adds points to purchases.

    A promotion may carry a bonus `rate` (extra points per unit spent), a flat
    `points` award, or both. The activity window is [start_time, end_time).
    """
    __tablename__ = 'promotions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=False, default='')
    promo_type = db.Column(db.String(20), nullable=False)

    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)

    min_spending = db.Column(db.Numeric(10, 2))
    rate = db.Column(db.Numeric(6, 4))
    points = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Promotion {self.id}: {self.name}>'

    @property
    def is_one_time(self) -> bool:
        return self.promo_type == PromotionType.ONE_TIME.value

    @property
    def is_automatic(self) -> bool:
        return self.promo_type == PromotionType.AUTOMATIC.value

    def is_active_at(self, as_of: datetime) -> bool:
        return self.start_time <= as_of < self.end_time

    def meets_minimum(self, spent: Decimal) -> bool:
        if self.min_spending is None:
            return True
        return Decimal(str(self.min_spending)) <= spent

    def to_dict(self, include_start: bool = True, include_description: bool = True):
        data = {
            'id': self.id,
            'name': self.name,
            'type': self.promo_type,
            'endTime': self.end_time.isoformat(),
            'minSpending': float(self.min_spending) if self.min_spending is not None else None,
            'rate': float(self.rate) if self.rate is not None else None,
            'points': self.points,
        }
        if include_description:
            data['description'] = self.description
        if include_start:
            data['startTime'] = self.start_time.isoformat()
        return data


class PromotionUsage(db.Model):
    """
    Records that a user has consumed a one-time promotion.

    The (user_id, promotion_id) unique constraint is what stops two concurrent
    purchases from both redeeming the same one-time promotion. Rows are never deleted.
    """
    __tablename__ = 'promotion_usages'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    promotion_id = db.Column(db.Integer, db.ForeignKey('promotions.id'), nullable=False)
    used_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'promotion_id', name='uq_promotion_usage_user_promotion'),
    )

    def __repr__(self):
        return f'<PromotionUsage user={self.user_id} promotion={self.promotion_id}>'
