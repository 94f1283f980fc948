"""
User model and role hierarchy.
"""
import re
from datetime import datetime
from enum import Enum

from ..extensions import db


class Role(str, Enum):
    """Roles from lowest to highest privilege."""
    REGULAR = 'regular'
    CASHIER = 'cashier'
    MANAGER = 'manager'
    SUPERUSER = 'superuser'

    @property
    def rank(self) -> int:
        return list(Role).index(self)

    def at_least(self, other) -> bool:
        """True if this role is the same as or more privileged than `other`."""
        return self.rank >= Role(other).rank


UTORID_PATTERN = re.compile(r'^[A-Za-z0-9]{7,8}$')


class User(db.Model):
    """
    Loyalty program member or staff account.

    `points` is the authoritative balance. It is only ever changed through the
    ledger's atomic increment, never recomputed from transaction history.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    utorid = db.Column(db.String(8), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(100))

    role = db.Column(db.String(20), nullable=False, default=Role.REGULAR.value)
    points = db.Column(db.Integer, nullable=False, default=0)
    verified = db.Column(db.Boolean, nullable=False, default=False)

    # Purchases created by a suspicious cashier are withheld pending review
    suspicious = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('points >= 0', name='ck_users_points_non_negative'),
    )

    def __repr__(self):
        return f'<User {self.utorid}>'

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    def to_dict(self):
        return {
            'id': self.id,
            'utorid': self.utorid,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'points': self.points,
            'verified': self.verified,
            'suspicious': self.suspicious,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
