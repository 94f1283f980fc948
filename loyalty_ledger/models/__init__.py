"""
Database models for the loyalty ledger.
"""
from .user import User, Role
from .promotion import Promotion, PromotionUsage, PromotionType
from .transaction import Transaction, TransactionPromotion, TransactionType

__all__ = [
    'User',
    'Role',
    'Promotion',
    'PromotionUsage',
    'PromotionType',
    'Transaction',
    'TransactionPromotion',
    'TransactionType',
]
