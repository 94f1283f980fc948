"""
Ledger transaction model.
"""
from datetime import datetime
from enum import Enum

from ..extensions import db


class TransactionType(str, Enum):
    """Types of ledger transaction."""
    PURCHASE = 'purchase'
    ADJUSTMENT = 'adjustment'
    REDEMPTION = 'redemption'
    TRANSFER = 'transfer'
    EVENT = 'event'


# Types whose related_id is reported to callers
RELATED_ID_TYPES = (
    TransactionType.ADJUSTMENT.value,
    TransactionType.TRANSFER.value,
    TransactionType.EVENT.value,
)


class Transaction(db.Model):
    """
    One entry in the points ledger.

    `amount` is the signed points delta intended for the owner. When
    `suspicious` is set the amount has NOT been applied to the owner's balance.
    Only `suspicious`, `processed_at` and `processed_by_id` change after creation.

    related_id meaning by type:
    - adjustment: the transaction being corrected
    - transfer: the counterparty user
    - event: the event that awarded the points
    """
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    transaction_type = db.Column(db.String(20), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)

    # Type-specific fields
    spent = db.Column(db.Numeric(10, 2))       # purchase
    redeemed = db.Column(db.Integer)           # redemption
    related_id = db.Column(db.Integer)         # adjustment, transfer, event

    suspicious = db.Column(db.Boolean, nullable=False, default=False)
    remark = db.Column(db.String(500))

    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    processed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    processed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = db.relationship('User', foreign_keys=[user_id], backref=db.backref('transactions', lazy='dynamic'))
    created_by = db.relationship('User', foreign_keys=[created_by_id])
    processed_by = db.relationship('User', foreign_keys=[processed_by_id])
    promotion_links = db.relationship(
        'TransactionPromotion',
        backref='transaction',
        order_by='TransactionPromotion.promotion_id',
    )

    def __repr__(self):
        return f'<Transaction {self.id}: {self.transaction_type} {self.amount} pts for user {self.user_id}>'

    @property
    def promotion_ids(self):
        return [link.promotion_id for link in self.promotion_links]

    @property
    def is_pending_redemption(self) -> bool:
        return self.transaction_type == TransactionType.REDEMPTION.value and self.processed_at is None

    def to_dict(self, include_processed_by: bool = False):
        data = {
            'id': self.id,
            'utorid': self.user.utorid,
            'type': self.transaction_type,
            'amount': self.amount,
            'promotionIds': self.promotion_ids,
            'suspicious': self.suspicious,
            'remark': self.remark or '',
            'createdBy': self.created_by.utorid,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'processedAt': self.processed_at.isoformat() if self.processed_at else None,
        }

        if self.transaction_type == TransactionType.PURCHASE.value:
            data['spent'] = float(self.spent) if self.spent is not None else None
        elif self.transaction_type in RELATED_ID_TYPES:
            data['relatedId'] = self.related_id
        elif self.transaction_type == TransactionType.REDEMPTION.value:
            data['redeemed'] = self.redeemed
            if include_processed_by:
                data['processedBy'] = self.processed_by.utorid if self.processed_by else None

        return data


class TransactionPromotion(db.Model):
    """Promotions applied to a purchase. Fixed at creation."""
    __tablename__ = 'transaction_promotions'

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey('transactions.id'), nullable=False)
    promotion_id = db.Column(db.Integer, db.ForeignKey('promotions.id'), nullable=False, index=True)

    promotion = db.relationship('Promotion')

    __table_args__ = (
        db.UniqueConstraint('transaction_id', 'promotion_id', name='uq_transaction_promotion'),
    )
